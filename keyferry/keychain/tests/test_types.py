"""Tests for backend kind and accessibility parsing."""

import pytest

from keyferry.keychain.types import (
    DEFAULT_ACCESSIBILITY,
    READ_ORDER,
    Accessibility,
    BackendKind,
    parse_accessibility,
    parse_backend_kind,
    parse_write_kind,
)


class TestParseBackendKind:
    @pytest.mark.parametrize(
        "name,expected",
        [
            ("file", BackendKind.FILE),
            ("default", BackendKind.FILE),
            ("data-protection-local", BackendKind.DATA_PROTECTION),
            ("data-protection", BackendKind.DATA_PROTECTION),
            ("local", BackendKind.DATA_PROTECTION),
            ("icloud", BackendKind.ICLOUD),
            ("all", BackendKind.ALL),
            ("", BackendKind.ALL),
        ],
    )
    def test_aliases(self, name, expected):
        assert parse_backend_kind(name) is expected

    def test_unknown(self):
        with pytest.raises(ValueError, match="invalid keychain type"):
            parse_backend_kind("cloud")

    def test_case_sensitive(self):
        with pytest.raises(ValueError):
            parse_backend_kind("File")

    def test_write_kind_rejects_all(self):
        with pytest.raises(ValueError, match="cannot be used for writing"):
            parse_write_kind("all")
        with pytest.raises(ValueError):
            parse_write_kind("")

    def test_write_kind_concrete(self):
        assert parse_write_kind("local") is BackendKind.DATA_PROTECTION

    def test_read_order(self):
        assert READ_ORDER == (BackendKind.FILE, BackendKind.DATA_PROTECTION, BackendKind.ICLOUD)
        assert BackendKind.ALL not in READ_ORDER


class TestAccessibility:
    def test_eight_levels(self):
        assert len(Accessibility) == 8

    def test_default(self):
        assert DEFAULT_ACCESSIBILITY is Accessibility.WHEN_UNLOCKED

    def test_parse(self):
        assert parse_accessibility("after-first-unlock-this-device-only") is (
            Accessibility.AFTER_FIRST_UNLOCK_THIS_DEVICE_ONLY
        )

    def test_parse_invalid(self):
        with pytest.raises(ValueError, match="invalid accessibility"):
            parse_accessibility("whenever")
