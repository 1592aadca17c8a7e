"""
Vault backend interface — the native primitives the Secure Note Store uses.

A backend stores generic-password items identified by (kind, account, service)
and exposes four primitives mirroring the OS keychain API:

    add(item)                          → create; DuplicateItemError if present
    query(kind, account, service)      → first matching item or None
    update(kind, account, service, d)  → replace data; ItemNotFoundError if absent
    delete(kind, account, service)     → remove; ItemNotFoundError if absent
"""

from __future__ import annotations

import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass

from keyferry.errors import VaultError
from keyferry.keychain.types import DEFAULT_ACCESSIBILITY, Accessibility, BackendKind

# OSStatus values shared by every backend.
ERR_SEC_DUPLICATE_ITEM = -25299
ERR_SEC_ITEM_NOT_FOUND = -25300

SEC_CLASS_GENERIC_PASSWORD = "genp"


class DuplicateItemError(VaultError):
    def __init__(self, message: str = "item already exists") -> None:
        super().__init__(message, ERR_SEC_DUPLICATE_ITEM)


class ItemNotFoundError(VaultError):
    def __init__(self, message: str = "item not found") -> None:
        super().__init__(message, ERR_SEC_ITEM_NOT_FOUND)


@dataclass(frozen=True)
class KeychainItem:
    """A vault-resident generic-password item."""

    kind: BackendKind
    account: str
    service: str
    data: bytes = b""
    accessibility: Accessibility = DEFAULT_ACCESSIBILITY
    description: str = "secure note"
    sec_class: str = SEC_CLASS_GENERIC_PASSWORD

    def __post_init__(self) -> None:
        if self.kind is BackendKind.ALL:
            raise ValueError("a keychain item must belong to a concrete backend kind")

    @property
    def synchronizable(self) -> bool:
        return self.kind is BackendKind.ICLOUD

    @property
    def data_protection(self) -> bool:
        return self.kind is BackendKind.DATA_PROTECTION

    def __repr__(self) -> str:
        # Never render the payload.
        return (
            f"KeychainItem(kind={self.kind.value!r}, account={self.account!r}, "
            f"service={self.service!r}, accessibility={self.accessibility.value!r})"
        )


class VaultBackend(ABC):
    """Native vault primitives. Implementations must not retry."""

    @abstractmethod
    def add(self, item: KeychainItem) -> None: ...

    @abstractmethod
    def query(self, kind: BackendKind, account: str, service: str) -> KeychainItem | None: ...

    @abstractmethod
    def update(self, kind: BackendKind, account: str, service: str, data: bytes) -> None: ...

    @abstractmethod
    def delete(self, kind: BackendKind, account: str, service: str) -> None: ...


def open_vault(vault_config) -> VaultBackend:
    """Return the backend selected by a keyferry.config.VaultConfig."""
    backend = vault_config.backend
    if backend == "auto":
        backend = "macos" if sys.platform == "darwin" else "file"

    if backend == "macos":
        from keyferry.keychain.macos import MacOSKeychain

        return MacOSKeychain(keychain_path=vault_config.keychain_path or None)

    from keyferry.keychain.filevault import EncryptedFileVault

    return EncryptedFileVault(vault_config.path)
