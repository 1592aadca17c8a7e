"""
Plugin wire protocol — one JSON request in, one JSON response out.

Request:  {"id": int, "keyname": str, "write": bool,
           "contents": base64 | absent, "sys_specific": base64(JSON)}
Response: {"id": int, "contents": base64 | absent,
           "error": {"message": str, "detail": str} | absent}

sys_specific carries the backend configuration. It is decoded by format tag
("keychain" is the only format defined) and never echoed in a response.
"""

from __future__ import annotations

import base64
import binascii
import json
import secrets
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, ValidationError, field_serializer, field_validator

from keyferry.config import DEFAULT_PLUGIN_BINARY
from keyferry.errors import FormatError, ParseError
from keyferry.keychain.types import (
    DEFAULT_ACCESSIBILITY,
    Accessibility,
    BackendKind,
    parse_accessibility,
    parse_backend_kind,
)

KEY_NOT_FOUND = "key not found"
KEY_EXISTS = "key already exists"


def _decode_b64(value: Any) -> Any:
    if isinstance(value, str):
        try:
            return base64.b64decode(value, validate=True)
        except binascii.Error as e:
            raise ValueError(f"invalid base64: {e}") from e
    return value


def _encode_b64(value: bytes | None) -> str | None:
    if value is None:
        return None
    return base64.b64encode(value).decode("ascii")


def _next_id() -> int:
    return secrets.randbelow(1 << 31) + 1


class ErrorDetail(BaseModel):
    message: str
    detail: str = ""


def key_not_found(keyname: str) -> ErrorDetail:
    return ErrorDetail(message=KEY_NOT_FOUND, detail=keyname)


def key_exists(keyname: str) -> ErrorDetail:
    return ErrorDetail(message=KEY_EXISTS, detail=keyname)


class Response(BaseModel):
    id: int = 0
    contents: bytes | None = None
    error: ErrorDetail | None = None
    sys_specific: bytes | None = None

    @field_validator("contents", "sys_specific", mode="before")
    @classmethod
    def decode_bytes(cls, value: Any) -> Any:
        return _decode_b64(value)

    @field_serializer("contents", "sys_specific")
    def encode_bytes(self, value: bytes | None) -> str | None:
        return _encode_b64(value)

    def to_wire(self) -> bytes:
        return self.model_dump_json(exclude_none=True, exclude={"sys_specific"}).encode()

    def __repr__(self) -> str:
        return f"Response(id={self.id}, contents={'<set>' if self.contents is not None else None}, error={self.error!r})"


class Request(BaseModel):
    id: int = 0
    keyname: str
    write: bool = False
    contents: bytes | None = None
    sys_specific: bytes = b""

    @field_validator("contents", "sys_specific", mode="before")
    @classmethod
    def decode_bytes(cls, value: Any) -> Any:
        return _decode_b64(value)

    @field_serializer("contents", "sys_specific")
    def encode_bytes(self, value: bytes | None) -> str | None:
        return _encode_b64(value)

    def new_response(
        self, contents: bytes | None = None, error: ErrorDetail | None = None
    ) -> Response:
        return Response(id=self.id, contents=contents, error=error)

    def to_wire(self) -> bytes:
        return self.model_dump_json(exclude_none=True).encode()

    def __repr__(self) -> str:
        return f"Request(id={self.id}, keyname={self.keyname!r}, write={self.write})"


class KeychainConfig(BaseModel):
    """sys_specific schema for the keychain plugin."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    format: Literal["keychain"] = "keychain"
    binary: str = DEFAULT_PLUGIN_BINARY
    keychain_path: str = ""
    keychain_type: BackendKind = BackendKind.ALL
    account: str = ""
    update_in_place: bool = False
    accessibility: Accessibility = DEFAULT_ACCESSIBILITY

    @field_validator("keychain_type", mode="before")
    @classmethod
    def parse_kind(cls, value: Any) -> Any:
        return parse_backend_kind(value) if isinstance(value, str) else value

    @field_validator("accessibility", mode="before")
    @classmethod
    def parse_accessibility_name(cls, value: Any) -> Any:
        return parse_accessibility(value) if isinstance(value, str) else value


SYS_SPECIFIC_FORMATS: dict[str, type[KeychainConfig]] = {
    "keychain": KeychainConfig,
}


def encode_sys_specific(config: KeychainConfig) -> bytes:
    return config.model_dump_json().encode()


def decode_sys_specific(data: bytes) -> KeychainConfig:
    """Decode sys_specific by its format tag; unknown tags and fields are rejected."""
    try:
        doc = json.loads(data)
    except (ValueError, UnicodeDecodeError) as e:
        raise ParseError(f"sys_specific is not valid JSON: {e}") from e
    if not isinstance(doc, dict):
        raise ParseError("sys_specific must be a JSON object")
    fmt = doc.get("format")
    model = SYS_SPECIFIC_FORMATS.get(fmt) if isinstance(fmt, str) else None
    if model is None:
        raise FormatError(f"unknown sys_specific format: {fmt!r}")
    try:
        return model.model_validate(doc)
    except ValidationError as e:
        raise ParseError(f"invalid sys_specific: {e}") from e


def new_request(keyname: str, config: KeychainConfig) -> Request:
    """Create a read request for keyname."""
    return Request(id=_next_id(), keyname=keyname, sys_specific=encode_sys_specific(config))


def new_write_request(keyname: str, contents: bytes, config: KeychainConfig) -> Request:
    """Create a request that writes contents under keyname."""
    return Request(
        id=_next_id(),
        keyname=keyname,
        write=True,
        contents=contents,
        sys_specific=encode_sys_specific(config),
    )
