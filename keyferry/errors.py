"""Exception taxonomy shared by every keyferry component."""

from __future__ import annotations


class KeyferryError(Exception):
    """Base class for all keyferry errors."""


class KeyNotFoundError(KeyferryError):
    """The named item does not exist."""

    def __init__(self, name: str, detail: str = "") -> None:
        self.name = name
        super().__init__(f"key not found: {name}" + (f" ({detail})" if detail else ""))


class KeyExistsError(KeyferryError):
    """The named item already exists and update-in-place was not requested."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"key already exists: {name}")


class VaultError(KeyferryError):
    """Unclassified failure reported by the underlying vault."""

    def __init__(self, message: str, status: int | None = None) -> None:
        self.status = status
        super().__init__(message if status is None else f"{message} (status {status})")


class FormatError(KeyferryError):
    """An envelope carried a format tag this decoder does not understand."""


class ParseError(KeyferryError):
    """A message or payload could not be parsed."""


class PluginError(KeyferryError):
    """Opaque failure reported by (or while talking to) the plugin helper."""

    def __init__(self, message: str, detail: str = "", stderr: str = "") -> None:
        self.message = message
        self.detail = detail
        self.stderr = stderr
        super().__init__(f"{message}: {detail}" if detail else message)


class InstallFailure(KeyferryError):
    """A key could not be written into the kernel keyring."""

    def __init__(self, key_id: str, cause: str) -> None:
        self.key_id = key_id
        super().__init__(f"failed to install key {key_id!r}: {cause}")


class ProfileError(KeyferryError):
    """The restricted execution profile could not be fetched or merged."""
