"""
Encrypted file vault — a portable VaultBackend for hosts without a keychain.

Items live in a single JSON document; each item's payload is AES-256-GCM
encrypted with the master key kept beside the file, and bound to the item's
(kind, account, service) identity as associated data.
"""

from __future__ import annotations

import base64
import json
import logging
import os
import stat
import tempfile
from pathlib import Path

from cryptography.exceptions import InvalidTag

from keyferry.errors import VaultError
from keyferry.keychain.crypto import decrypt, encrypt, init_master_key, load_master_key
from keyferry.keychain.types import Accessibility, BackendKind
from keyferry.keychain.vault import (
    DuplicateItemError,
    ItemNotFoundError,
    KeychainItem,
    VaultBackend,
)

logger = logging.getLogger(__name__)

FILE_VERSION = 1


def _identity(kind: BackendKind, account: str, service: str) -> bytes:
    return f"{kind.value}\0{account}\0{service}".encode()


class EncryptedFileVault(VaultBackend):
    """VaultBackend persisted to an encrypted JSON file."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def _master_key(self) -> bytes:
        try:
            init_master_key(self.path.parent)
            return load_master_key(self.path.parent)
        except (OSError, ValueError) as e:
            raise VaultError(f"failed to load vault master key in {self.path.parent}: {e}") from e

    def _load(self) -> list[dict]:
        if not self.path.exists():
            return []
        try:
            doc = json.loads(self.path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            raise VaultError(f"failed to read vault file {self.path}: {e}") from e
        if not isinstance(doc, dict) or doc.get("version") != FILE_VERSION:
            raise VaultError(f"unsupported vault file format: {self.path}")
        items = doc.get("items", [])
        if not isinstance(items, list):
            raise VaultError(f"corrupt vault file: {self.path}")
        return items

    def _save(self, items: list[dict]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".vault-", suffix=".json")
        except OSError as e:
            raise VaultError(f"failed to create vault file in {self.path.parent}: {e}") from e
        try:
            with os.fdopen(fd, "w") as f:
                json.dump({"version": FILE_VERSION, "items": items}, f, indent=2)
            os.chmod(tmp, stat.S_IRUSR | stat.S_IWUSR)
            os.replace(tmp, self.path)
        except OSError as e:
            Path(tmp).unlink(missing_ok=True)
            raise VaultError(f"failed to write vault file {self.path}: {e}") from e

    @staticmethod
    def _find(items: list[dict], kind: BackendKind, account: str, service: str) -> int:
        for i, rec in enumerate(items):
            if (
                rec.get("kind") == kind.value
                and rec.get("account") == account
                and rec.get("service") == service
            ):
                return i
        return -1

    def _seal(self, kind: BackendKind, account: str, service: str, data: bytes) -> str:
        sealed = encrypt(data, self._master_key(), _identity(kind, account, service))
        return base64.b64encode(sealed).decode("ascii")

    def add(self, item: KeychainItem) -> None:
        items = self._load()
        if self._find(items, item.kind, item.account, item.service) >= 0:
            raise DuplicateItemError()
        items.append(
            {
                "kind": item.kind.value,
                "account": item.account,
                "service": item.service,
                "description": item.description,
                "accessibility": item.accessibility.value,
                "data": self._seal(item.kind, item.account, item.service, item.data),
            }
        )
        self._save(items)
        logger.debug("Added %s item %s/%s", item.kind, item.account, item.service)

    def query(self, kind: BackendKind, account: str, service: str) -> KeychainItem | None:
        items = self._load()
        idx = self._find(items, kind, account, service)
        if idx < 0:
            return None
        rec = items[idx]
        master_key = self._master_key()
        try:
            sealed = base64.b64decode(rec["data"], validate=True)
            data = decrypt(sealed, master_key, _identity(kind, account, service))
        except (KeyError, TypeError, ValueError, InvalidTag) as e:
            raise VaultError(f"failed to decrypt item {account}/{service}") from e
        try:
            accessibility = Accessibility(rec.get("accessibility", Accessibility.DEFAULT.value))
        except ValueError as e:
            raise VaultError(f"corrupt accessibility for item {account}/{service}: {e}") from e
        return KeychainItem(
            kind=kind,
            account=account,
            service=service,
            data=data,
            accessibility=accessibility,
            description=rec.get("description", ""),
        )

    def update(self, kind: BackendKind, account: str, service: str, data: bytes) -> None:
        items = self._load()
        idx = self._find(items, kind, account, service)
        if idx < 0:
            raise ItemNotFoundError()
        items[idx]["data"] = self._seal(kind, account, service, data)
        self._save(items)

    def delete(self, kind: BackendKind, account: str, service: str) -> None:
        items = self._load()
        idx = self._find(items, kind, account, service)
        if idx < 0:
            raise ItemNotFoundError()
        del items[idx]
        self._save(items)
