"""
Root-level shared test fixtures.

Inherited by the keychain, plugin, credentials and bridge suites as well as
the CLI and end-to-end tests under tests/.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from keyferry.keychain.filevault import EncryptedFileVault
from keyferry.keychain.types import BackendKind
from keyferry.keychain.vault import (
    DuplicateItemError,
    ItemNotFoundError,
    KeychainItem,
    VaultBackend,
)


class MemoryVault(VaultBackend):
    """In-memory VaultBackend. Records every primitive call."""

    def __init__(self) -> None:
        self.items: dict[tuple[BackendKind, str, str], KeychainItem] = {}
        self.calls: list[tuple[str, BackendKind, str, str]] = []
        self.failures: dict[BackendKind, Exception] = {}

    def _maybe_fail(self, kind: BackendKind) -> None:
        if kind in self.failures:
            raise self.failures[kind]

    def add(self, item: KeychainItem) -> None:
        self.calls.append(("add", item.kind, item.account, item.service))
        self._maybe_fail(item.kind)
        key = (item.kind, item.account, item.service)
        if key in self.items:
            raise DuplicateItemError()
        self.items[key] = item

    def query(self, kind: BackendKind, account: str, service: str) -> KeychainItem | None:
        self.calls.append(("query", kind, account, service))
        self._maybe_fail(kind)
        return self.items.get((kind, account, service))

    def update(self, kind: BackendKind, account: str, service: str, data: bytes) -> None:
        self.calls.append(("update", kind, account, service))
        self._maybe_fail(kind)
        key = (kind, account, service)
        if key not in self.items:
            raise ItemNotFoundError()
        old = self.items[key]
        self.items[key] = KeychainItem(
            kind=kind, account=account, service=service, data=data, accessibility=old.accessibility
        )

    def delete(self, kind: BackendKind, account: str, service: str) -> None:
        self.calls.append(("delete", kind, account, service))
        self._maybe_fail(kind)
        if self.items.pop((kind, account, service), None) is None:
            raise ItemNotFoundError()


@pytest.fixture
def memory_vault() -> MemoryVault:
    return MemoryVault()


@pytest.fixture
def file_vault(tmp_path: Path) -> EncryptedFileVault:
    """Encrypted file vault in a temp directory."""
    return EncryptedFileVault(tmp_path / "vault" / "vault.json")


@pytest.fixture
def clean_env(monkeypatch):
    """Remove keyferry env vars that leak between tests."""
    for key in [
        "KEYFERRY_WORKSPACE",
        "KEYFERRY_VAULT",
        "KEYFERRY_VAULT_PATH",
        "KEYFERRY_KEYCHAIN_PATH",
        "KEYFERRY_KEYCHAIN_TYPE",
        "KEYFERRY_ACCOUNT",
        "KEYFERRY_PLUGIN_BINARY",
        "KEYFERRY_PLUGIN_TIMEOUT",
        "KEYFERRY_DOCKER_BINARY",
        "KEYFERRY_SECCOMP_PROFILE_URL",
        "KEYFERRY_LOG_LEVEL",
    ]:
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def file_vault_env(tmp_path: Path, monkeypatch, clean_env) -> Path:
    """Point keyferry at a file vault under tmp_path; returns the workspace."""
    workspace = tmp_path / "workspace"
    monkeypatch.setenv("KEYFERRY_WORKSPACE", str(workspace))
    monkeypatch.setenv("KEYFERRY_VAULT", "file")
    monkeypatch.setenv("KEYFERRY_ACCOUNT", "test-user")
    return workspace
