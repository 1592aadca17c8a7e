"""Backend kinds and accessibility levels, with their explicit parse tables."""

from __future__ import annotations

from enum import StrEnum


class BackendKind(StrEnum):
    # Legacy, local only, file based keychain.
    FILE = "file"
    # Local keychain integrated with the secure enclave. Callers must be
    # signed and carry the keychain-access-groups entitlement.
    DATA_PROTECTION = "data-protection-local"
    # Keychain synced across devices. Same signing requirements.
    ICLOUD = "icloud"
    # Virtual kind: query every concrete kind until one matches.
    ALL = "all"


# Fixed probe order for reads against BackendKind.ALL.
READ_ORDER: tuple[BackendKind, ...] = (
    BackendKind.FILE,
    BackendKind.DATA_PROTECTION,
    BackendKind.ICLOUD,
)

_KIND_ALIASES: dict[str, BackendKind] = {
    "file": BackendKind.FILE,
    "default": BackendKind.FILE,
    "data-protection-local": BackendKind.DATA_PROTECTION,
    "data-protection": BackendKind.DATA_PROTECTION,
    "local": BackendKind.DATA_PROTECTION,
    "icloud": BackendKind.ICLOUD,
    "all": BackendKind.ALL,
    "": BackendKind.ALL,
}


def parse_backend_kind(value: str) -> BackendKind:
    """Parse a backend kind name, accepting the documented aliases."""
    try:
        return _KIND_ALIASES[value]
    except KeyError:
        raise ValueError(f"invalid keychain type: {value!r}") from None


def parse_write_kind(value: str) -> BackendKind:
    """Parse a backend kind that can be written to (anything but 'all')."""
    kind = parse_backend_kind(value)
    if kind is BackendKind.ALL:
        raise ValueError(f"keychain type {value!r} cannot be used for writing")
    return kind


class Accessibility(StrEnum):
    """When the OS will release an item's data."""

    DEFAULT = "default"
    WHEN_UNLOCKED = "when-unlocked"
    AFTER_FIRST_UNLOCK = "after-first-unlock"
    ALWAYS = "always"
    WHEN_PASSCODE_SET_THIS_DEVICE_ONLY = "when-passcode-set-this-device-only"
    WHEN_UNLOCKED_THIS_DEVICE_ONLY = "when-unlocked-this-device-only"
    AFTER_FIRST_UNLOCK_THIS_DEVICE_ONLY = "after-first-unlock-this-device-only"
    ALWAYS_THIS_DEVICE_ONLY = "always-this-device-only"


DEFAULT_ACCESSIBILITY = Accessibility.WHEN_UNLOCKED


def parse_accessibility(value: str) -> Accessibility:
    try:
        return Accessibility(value)
    except ValueError:
        raise ValueError(f"invalid accessibility: {value!r}") from None
