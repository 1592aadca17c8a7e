"""Tests for the encrypted file vault backend."""

import json
import stat

import pytest

from keyferry.errors import VaultError
from keyferry.keychain.types import Accessibility, BackendKind
from keyferry.keychain.vault import DuplicateItemError, ItemNotFoundError, KeychainItem


def _item(service="github", data=b"ghp_secret", kind=BackendKind.FILE, account="alice"):
    return KeychainItem(kind=kind, account=account, service=service, data=data)


class TestEncryptedFileVault:
    def test_add_and_query(self, file_vault):
        file_vault.add(_item())
        item = file_vault.query(BackendKind.FILE, "alice", "github")
        assert item is not None
        assert item.data == b"ghp_secret"
        assert item.accessibility is Accessibility.WHEN_UNLOCKED

    def test_query_missing(self, file_vault):
        assert file_vault.query(BackendKind.FILE, "alice", "nope") is None

    def test_items_scoped_by_kind_and_account(self, file_vault):
        file_vault.add(_item())
        assert file_vault.query(BackendKind.ICLOUD, "alice", "github") is None
        assert file_vault.query(BackendKind.FILE, "bob", "github") is None

    def test_duplicate(self, file_vault):
        file_vault.add(_item())
        with pytest.raises(DuplicateItemError):
            file_vault.add(_item(data=b"other"))

    def test_update(self, file_vault):
        file_vault.add(_item())
        file_vault.update(BackendKind.FILE, "alice", "github", b"rotated")
        assert file_vault.query(BackendKind.FILE, "alice", "github").data == b"rotated"

    def test_update_missing(self, file_vault):
        with pytest.raises(ItemNotFoundError):
            file_vault.update(BackendKind.FILE, "alice", "github", b"x")

    def test_delete(self, file_vault):
        file_vault.add(_item())
        file_vault.delete(BackendKind.FILE, "alice", "github")
        assert file_vault.query(BackendKind.FILE, "alice", "github") is None
        with pytest.raises(ItemNotFoundError):
            file_vault.delete(BackendKind.FILE, "alice", "github")

    def test_payload_not_stored_in_clear(self, file_vault):
        file_vault.add(_item(data=b"plain-text-token"))
        assert b"plain-text-token" not in file_vault.path.read_bytes()

    def test_file_permissions(self, file_vault):
        file_vault.add(_item())
        mode = file_vault.path.stat().st_mode
        assert mode & (stat.S_IRWXG | stat.S_IRWXO) == 0

    def test_tampered_identity_fails(self, file_vault):
        file_vault.add(_item())
        doc = json.loads(file_vault.path.read_text())
        doc["items"][0]["service"] = "gitlab"
        file_vault.path.write_text(json.dumps(doc))
        with pytest.raises(VaultError, match="decrypt"):
            file_vault.query(BackendKind.FILE, "alice", "gitlab")

    def test_corrupt_file(self, file_vault):
        file_vault.path.parent.mkdir(parents=True, exist_ok=True)
        file_vault.path.write_text("{not json")
        with pytest.raises(VaultError):
            file_vault.query(BackendKind.FILE, "alice", "github")

    def test_unknown_version(self, file_vault):
        file_vault.path.parent.mkdir(parents=True, exist_ok=True)
        file_vault.path.write_text(json.dumps({"version": 99, "items": []}))
        with pytest.raises(VaultError, match="unsupported"):
            file_vault.query(BackendKind.FILE, "alice", "github")

    def test_short_master_key(self, file_vault):
        file_vault.path.parent.mkdir(parents=True, exist_ok=True)
        (file_vault.path.parent / ".vault-key").write_bytes(b"short")
        with pytest.raises(VaultError, match="master key"):
            file_vault.add(_item())

    def test_unwritable_directory(self, tmp_path):
        from keyferry.keychain.filevault import EncryptedFileVault

        blocker = tmp_path / "blocker"
        blocker.write_text("a file, not a directory")
        vault = EncryptedFileVault(blocker / "vault.json")
        with pytest.raises(VaultError):
            vault.add(_item())

    def test_corrupt_accessibility(self, file_vault):
        file_vault.add(_item())
        doc = json.loads(file_vault.path.read_text())
        doc["items"][0]["accessibility"] = "sometimes"
        file_vault.path.write_text(json.dumps(doc))
        with pytest.raises(VaultError, match="accessibility"):
            file_vault.query(BackendKind.FILE, "alice", "github")


class TestKeychainItem:
    def test_all_is_not_a_concrete_kind(self):
        with pytest.raises(ValueError):
            _item(kind=BackendKind.ALL)

    def test_flags(self):
        assert _item(kind=BackendKind.ICLOUD).synchronizable
        assert _item(kind=BackendKind.DATA_PROTECTION).data_protection
        assert not _item().synchronizable

    def test_repr_hides_payload(self):
        assert "ghp_secret" not in repr(_item())
