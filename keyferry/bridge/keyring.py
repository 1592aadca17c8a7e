"""
Linux session keyring access via add_key(2) and keyctl(2).

Python has no binding for the kernel key retention service, so the two
syscalls are issued through libc's syscall(2) wrapper.
"""

from __future__ import annotations

import ctypes
import errno
import logging
import os
import platform
import sys

logger = logging.getLogger(__name__)

# (add_key, keyctl) syscall numbers per machine.
_SYSCALLS = {
    "x86_64": (248, 250),
    "amd64": (248, 250),
    "aarch64": (217, 219),
    "arm64": (217, 219),
    "riscv64": (217, 219),
    "i386": (286, 288),
    "i686": (286, 288),
    "armv7l": (309, 311),
    "armv6l": (309, 311),
    "ppc64le": (269, 271),
    "ppc64": (269, 271),
    "s390x": (278, 280),
}

KEY_SPEC_SESSION_KEYRING = -3
KEYCTL_GET_KEYRING_ID = 0
KEYCTL_SEARCH = 10
KEYCTL_READ = 11

KEY_TYPE_USER = b"user"


class SessionKeyring:
    """The calling process's session keyring, created if it does not exist."""

    def __init__(self, libc: ctypes.CDLL | None = None, machine: str | None = None) -> None:
        if libc is None and not sys.platform.startswith("linux"):
            raise OSError(errno.ENOSYS, "kernel keyrings are only available on Linux")
        machine = machine or platform.machine()
        try:
            self._add_key_nr, self._keyctl_nr = _SYSCALLS[machine]
        except KeyError:
            raise OSError(errno.ENOSYS, f"keyring syscalls unknown for machine {machine!r}") from None
        self._libc = libc or ctypes.CDLL(None, use_errno=True)
        self._libc.syscall.restype = ctypes.c_long
        self.id = self._keyctl(
            KEYCTL_GET_KEYRING_ID, ctypes.c_long(KEY_SPEC_SESSION_KEYRING), ctypes.c_long(1)
        )

    def _syscall(self, *args) -> int:
        result = self._libc.syscall(*args)
        if result == -1:
            err = ctypes.get_errno()
            raise OSError(err, os.strerror(err))
        return result

    def _keyctl(self, operation: int, *args) -> int:
        return self._syscall(ctypes.c_long(self._keyctl_nr), ctypes.c_long(operation), *args)

    def add(self, description: str, payload: bytes) -> int:
        """Add (or replace) a user key in this keyring; returns its serial."""
        serial = self._syscall(
            ctypes.c_long(self._add_key_nr),
            ctypes.c_char_p(KEY_TYPE_USER),
            ctypes.c_char_p(description.encode("utf-8")),
            ctypes.c_char_p(payload),
            ctypes.c_size_t(len(payload)),
            ctypes.c_long(self.id),
        )
        logger.debug("Added key %s (serial %d) to session keyring %d", description, serial, self.id)
        return serial

    def search(self, description: str) -> int:
        return self._keyctl(
            KEYCTL_SEARCH,
            ctypes.c_long(self.id),
            ctypes.c_char_p(KEY_TYPE_USER),
            ctypes.c_char_p(description.encode("utf-8")),
            ctypes.c_long(0),
        )

    def read(self, serial: int) -> bytes:
        size = self._keyctl(KEYCTL_READ, ctypes.c_long(serial), ctypes.c_void_p(None), ctypes.c_size_t(0))
        buf = ctypes.create_string_buffer(size)
        n = self._keyctl(KEYCTL_READ, ctypes.c_long(serial), buf, ctypes.c_size_t(size))
        return buf.raw[: min(n, size)]

    def get(self, description: str) -> bytes:
        """Look up a user key by description and return its payload."""
        return self.read(self.search(description))
