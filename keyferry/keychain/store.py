"""
Secure Note Store — typed read/write/update/delete of named notes in a vault.

Usage:
    from keyferry.keychain import new_store, new_readonly_store, BackendKind

    store = new_store(vault, BackendKind.FILE, "alice", update_in_place=True)
    store.write("github-token", b"ghp_...")
    reader = new_readonly_store(vault, BackendKind.ALL, "alice")
    reader.read("github-token")     # probes file, data-protection, icloud
"""

from __future__ import annotations

import logging
import plistlib
from xml.parsers.expat import ExpatError

from keyferry.errors import KeyExistsError, KeyNotFoundError, VaultError
from keyferry.keychain.types import (
    DEFAULT_ACCESSIBILITY,
    READ_ORDER,
    Accessibility,
    BackendKind,
)
from keyferry.keychain.vault import (
    DuplicateItemError,
    ItemNotFoundError,
    KeychainItem,
    VaultBackend,
)

logger = logging.getLogger(__name__)

NOTE_FIELD = "NOTE"


def extract_note(service: str, data: bytes) -> bytes:
    """Recover the note text from a stored payload.

    Notes created by Keychain Access are property-list dictionaries whose
    NOTE entry holds the text. Anything that is not a property list is a
    legacy raw payload and is returned verbatim.
    """
    try:
        doc = plistlib.loads(data)
    except (plistlib.InvalidFileException, ExpatError, ValueError):
        return data
    if not isinstance(doc, dict) or not isinstance(doc.get(NOTE_FIELD), str):
        raise KeyNotFoundError(service, f"stored document has no {NOTE_FIELD} entry")
    return doc[NOTE_FIELD].encode("utf-8")


class SecureNoteReader:
    """Read-only access to secure notes for one account."""

    def __init__(self, vault: VaultBackend, kind: BackendKind, account: str) -> None:
        self.vault = vault
        self.kind = kind
        self.account = account

    def read(self, service: str) -> bytes:
        """Read a note. BackendKind.ALL returns the first hit in READ_ORDER."""
        if self.kind is not BackendKind.ALL:
            return self._read_one(self.kind, service)

        first_error: VaultError | None = None
        for kind in READ_ORDER:
            try:
                return self._read_one(kind, service)
            except KeyNotFoundError:
                continue
            except VaultError as e:
                logger.debug("Read of %s from %s keychain failed: %s", service, kind, e)
                if first_error is None:
                    first_error = e
        if first_error is not None:
            raise first_error
        raise KeyNotFoundError(service)

    def _read_one(self, kind: BackendKind, service: str) -> bytes:
        item = self.vault.query(kind, self.account, service)
        if item is None:
            raise KeyNotFoundError(service)
        return extract_note(service, item.data)

    def read_file(self, name: str) -> bytes:
        return self.read(name)


class SecureNoteStore(SecureNoteReader):
    """Read/write access to secure notes for one account."""

    def __init__(
        self,
        vault: VaultBackend,
        kind: BackendKind,
        account: str,
        *,
        update_in_place: bool = False,
        accessibility: Accessibility = DEFAULT_ACCESSIBILITY,
    ) -> None:
        super().__init__(vault, kind, account)
        self.update_in_place = update_in_place
        self.accessibility = accessibility

    def _writable_kind(self) -> BackendKind:
        if self.kind is BackendKind.ALL:
            raise ValueError("writes must target a single concrete keychain type, not 'all'")
        return self.kind

    def write(self, service: str, data: bytes, accessibility: Accessibility | None = None) -> None:
        """Create a note. Updates an existing one only when update_in_place is set."""
        item = KeychainItem(
            kind=self._writable_kind(),
            account=self.account,
            service=service,
            data=data,
            accessibility=accessibility or self.accessibility,
        )
        try:
            self.vault.add(item)
        except DuplicateItemError:
            if not self.update_in_place:
                raise KeyExistsError(service) from None
            self.update(service, data)

    def update(self, service: str, data: bytes) -> None:
        try:
            self.vault.update(self._writable_kind(), self.account, service, data)
        except ItemNotFoundError:
            raise KeyNotFoundError(service) from None

    def delete(self, service: str) -> None:
        try:
            self.vault.delete(self._writable_kind(), self.account, service)
        except ItemNotFoundError:
            raise KeyNotFoundError(service) from None

    def write_file(self, name: str, data: bytes) -> None:
        self.write(name, data)


def new_store(
    vault: VaultBackend,
    kind: BackendKind,
    account: str,
    *,
    update_in_place: bool = False,
    accessibility: Accessibility = DEFAULT_ACCESSIBILITY,
) -> SecureNoteStore:
    return SecureNoteStore(
        vault, kind, account, update_in_place=update_in_place, accessibility=accessibility
    )


def new_readonly_store(
    vault: VaultBackend,
    kind: BackendKind,
    account: str,
    *,
    update_in_place: bool = False,
) -> SecureNoteReader:
    """Create a reader. Asking a reader to update in place is a programming error."""
    if update_in_place:
        raise ValueError("update_in_place cannot be set for a readonly keychain store")
    return SecureNoteReader(vault, kind, account)
