"""Credential sets: named secrets bundled for transport as one message."""

from __future__ import annotations

from keyferry.credentials.codec import (
    FORMAT,
    CredentialEntry,
    CredentialSet,
    decode,
    encode,
    parse_key_list,
    read_message,
    write_message,
)

__all__ = [
    "FORMAT",
    "CredentialEntry",
    "CredentialSet",
    "decode",
    "encode",
    "parse_key_list",
    "read_message",
    "write_message",
]
