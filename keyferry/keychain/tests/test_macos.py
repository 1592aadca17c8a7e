"""Tests for the macOS backend that do not need Security.framework."""

import sys
from pathlib import Path
from unittest.mock import patch

import pytest

from keyferry.config import VaultConfig
from keyferry.errors import VaultError
from keyferry.keychain.filevault import EncryptedFileVault
from keyferry.keychain.macos import MacOSKeychain, accessibility_constant
from keyferry.keychain.types import Accessibility, BackendKind
from keyferry.keychain.vault import open_vault


class TestAccessibilityConstant:
    def test_default_leaves_os_default(self):
        assert accessibility_constant(Accessibility.DEFAULT) is None

    def test_every_other_level_mapped(self):
        for level in Accessibility:
            if level is Accessibility.DEFAULT:
                continue
            name = accessibility_constant(level)
            assert name is not None
            assert name.startswith("kSecAttrAccessible")

    def test_specific(self):
        assert accessibility_constant(Accessibility.WHEN_UNLOCKED) == "kSecAttrAccessibleWhenUnlocked"


class TestOpenVault:
    def test_file_backend(self, tmp_path: Path):
        vault = open_vault(VaultConfig(backend="file", path=tmp_path / "v.json"))
        assert isinstance(vault, EncryptedFileVault)

    def test_macos_backend(self):
        vault = open_vault(VaultConfig(backend="macos", keychain_path="/tmp/test.keychain-db"))
        assert isinstance(vault, MacOSKeychain)
        assert vault.keychain_path == "/tmp/test.keychain-db"

    def test_auto(self, tmp_path: Path):
        vault = open_vault(VaultConfig(backend="auto", path=tmp_path / "v.json"))
        expected = MacOSKeychain if sys.platform == "darwin" else EncryptedFileVault
        assert isinstance(vault, expected)


@pytest.mark.skipif(sys.platform == "darwin", reason="frameworks exist on macOS")
class TestWithoutFrameworks:
    def test_query_raises_vault_error(self):
        with patch("ctypes.util.find_library", return_value=None):
            with pytest.raises(VaultError, match="Security.framework"):
                MacOSKeychain().query(BackendKind.FILE, "alice", "github")
