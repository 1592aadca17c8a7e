"""
Secure Note Store over the platform vault.

Public API:
    new_store(vault, kind, account, ...)           → SecureNoteStore
    new_readonly_store(vault, kind, account, ...)  → SecureNoteReader
    open_vault(vault_config)                        → VaultBackend for this host
    parse_backend_kind / parse_write_kind / parse_accessibility
"""

from __future__ import annotations

from keyferry.keychain.store import (
    SecureNoteReader,
    SecureNoteStore,
    extract_note,
    new_readonly_store,
    new_store,
)
from keyferry.keychain.types import (
    DEFAULT_ACCESSIBILITY,
    READ_ORDER,
    Accessibility,
    BackendKind,
    parse_accessibility,
    parse_backend_kind,
    parse_write_kind,
)
from keyferry.keychain.vault import KeychainItem, VaultBackend, open_vault

__all__ = [
    "DEFAULT_ACCESSIBILITY",
    "READ_ORDER",
    "Accessibility",
    "BackendKind",
    "KeychainItem",
    "SecureNoteReader",
    "SecureNoteStore",
    "VaultBackend",
    "extract_note",
    "new_readonly_store",
    "new_store",
    "open_vault",
    "parse_accessibility",
    "parse_backend_kind",
    "parse_write_kind",
]
