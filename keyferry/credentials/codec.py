"""
Credential Set codec.

Wire format (one JSON object):

    {"format": "inmemory_key_store",
     "payload": base64(JSON array of {"key_id", "token", "owner"[, "metadata"]})}

The format tag is checked before the payload is looked at; an unknown tag is
always a FormatError.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from collections.abc import Iterable, Iterator
from typing import IO, Any

import yaml
from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    ValidationError,
)

from keyferry.errors import FormatError, ParseError

logger = logging.getLogger(__name__)

FORMAT = "inmemory_key_store"


class CredentialEntry(BaseModel):
    """One secret: its id, who owns it, and the token value."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    key_id: str = Field(min_length=1, validation_alias=AliasChoices("key_id", "id"))
    token: SecretStr
    owner: str = Field(default="", validation_alias=AliasChoices("owner", "user"))
    metadata: dict[str, Any] | None = None

    def secret(self) -> bytes:
        return self.token.get_secret_value().encode("utf-8")

    def to_wire(self) -> dict[str, Any]:
        doc: dict[str, Any] = {
            "key_id": self.key_id,
            "token": self.token.get_secret_value(),
            "owner": self.owner,
        }
        if self.metadata is not None:
            doc["metadata"] = self.metadata
        return doc


class CredentialSet:
    """Insertion-ordered collection of CredentialEntry keyed by key_id."""

    def __init__(self, entries: Iterable[CredentialEntry] = ()) -> None:
        self._entries: dict[str, CredentialEntry] = {}
        for entry in entries:
            self.add(entry)

    def add(self, entry: CredentialEntry) -> None:
        if entry.key_id in self._entries:
            raise ValueError(f"duplicate key id: {entry.key_id!r}")
        self._entries[entry.key_id] = entry

    def get(self, key_id: str) -> CredentialEntry | None:
        return self._entries.get(key_id)

    def ids(self) -> list[str]:
        return list(self._entries)

    def __iter__(self) -> Iterator[CredentialEntry]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key_id: object) -> bool:
        return key_id in self._entries

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CredentialSet):
            return NotImplemented
        return list(self._entries.items()) == list(other._entries.items())

    def __repr__(self) -> str:
        return f"CredentialSet(ids={self.ids()!r})"


def _entries_from(items: Any) -> CredentialSet:
    if not isinstance(items, list):
        raise ParseError("credential payload must be a list of entries")
    try:
        entries = [CredentialEntry.model_validate(item) for item in items]
    except ValidationError as e:
        raise ParseError(f"invalid credential entry: {e}") from e
    try:
        return CredentialSet(entries)
    except ValueError as e:
        raise ParseError(str(e)) from e


def encode(credentials: CredentialSet) -> bytes:
    payload = json.dumps([entry.to_wire() for entry in credentials]).encode("utf-8")
    envelope = {"format": FORMAT, "payload": base64.b64encode(payload).decode("ascii")}
    return json.dumps(envelope).encode("utf-8")


def decode(data: bytes | str) -> CredentialSet:
    """Decode an envelope. FormatError for a foreign tag, ParseError otherwise."""
    try:
        envelope = json.loads(data)
    except (ValueError, UnicodeDecodeError) as e:
        raise ParseError(f"credential envelope is not valid JSON: {e}") from e
    return _from_envelope(envelope)


def _from_envelope(envelope: Any) -> CredentialSet:
    if not isinstance(envelope, dict):
        raise ParseError("credential envelope must be a JSON object")

    fmt = envelope.get("format")
    if fmt != FORMAT:
        raise FormatError(f"unknown format: {fmt!r}")

    payload = envelope.get("payload")
    if not isinstance(payload, str):
        raise ParseError("credential envelope has no payload")
    try:
        items = json.loads(base64.b64decode(payload, validate=True))
    except (binascii.Error, ValueError, UnicodeDecodeError) as e:
        raise ParseError(f"malformed credential payload: {e}") from e
    return _entries_from(items)


def write_message(stream: IO[bytes], credentials: CredentialSet) -> None:
    """Write one envelope, newline terminated."""
    stream.write(encode(credentials) + b"\n")
    stream.flush()


def read_message(stream: IO[bytes]) -> CredentialSet | None:
    """Read the first envelope on the stream; None when it carries nothing.

    The envelope may span several lines. Anything after it is ignored.
    """
    try:
        text = stream.read().decode("utf-8")
    except UnicodeDecodeError as e:
        raise ParseError(f"credential envelope is not valid UTF-8: {e}") from e
    start = len(text) - len(text.lstrip())
    if start == len(text):
        return None
    try:
        envelope, _ = json.JSONDecoder().raw_decode(text, start)
    except ValueError as e:
        raise ParseError(f"credential envelope is not valid JSON: {e}") from e
    credentials = _from_envelope(envelope)
    logger.debug("Decoded credential set with %d entries", len(credentials))
    return credentials


def parse_key_list(data: bytes | str) -> CredentialSet:
    """Load a YAML or JSON list of {key_id, token, owner|user} documents."""
    try:
        items = yaml.safe_load(data)
    except yaml.YAMLError as e:
        raise ParseError(f"invalid key list: {e}") from e
    if items is None:
        return CredentialSet()
    return _entries_from(items)
