"""
Container entrypoint — install piped credentials, then become the target command.

Sequence:
    1. read one credential envelope from stdin (absent or empty is fine)
    2. add every entry to the session keyring under its key id
    3. replace this process with the target command

Step 3 only happens once step 2 has succeeded for every key. A failure names
the key and nothing is exec'd.
"""

from __future__ import annotations

import errno
import logging
import os
import shutil
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import IO

from keyferry.bridge.keyring import SessionKeyring
from keyferry.credentials import CredentialSet, read_message
from keyferry.errors import InstallFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExecTarget:
    """A resolved command, ready to replace the current process image."""

    path: str
    argv: tuple[str, ...]
    env: Mapping[str, str] = field(default_factory=dict)

    def execute(self, execve: Callable = os.execve) -> None:
        """Replace the process. With the real os.execve this never returns."""
        logger.debug("exec %s", self.path)
        execve(self.path, list(self.argv), dict(self.env))


class Entrypoint:
    def __init__(
        self,
        keyring_factory: Callable[[], SessionKeyring] = SessionKeyring,
        execve: Callable = os.execve,
        environ: Mapping[str, str] | None = None,
    ):
        self._keyring_factory = keyring_factory
        self._execve = execve
        self.environ = os.environ if environ is None else environ

    def read_credentials(self, stream: IO[bytes] | None) -> CredentialSet | None:
        if stream is None or stream.isatty():
            return None
        return read_message(stream)

    def install(self, credentials: CredentialSet) -> list[str]:
        """Write every entry into the session keyring; returns the installed ids."""
        if not len(credentials):
            return []
        try:
            keyring = self._keyring_factory()
        except OSError as e:
            first = credentials.ids()[0]
            raise InstallFailure(first, f"failed to get session keyring: {e}") from e

        installed = []
        for entry in credentials:
            try:
                keyring.add(entry.key_id, entry.secret())
            except OSError as e:
                raise InstallFailure(entry.key_id, str(e)) from e
            logger.info("key written: %s", entry.key_id)
            installed.append(entry.key_id)
        return installed

    def resolve(self, args: Sequence[str]) -> ExecTarget:
        if not args:
            raise ValueError("entrypoint requires a command to run")
        path = shutil.which(args[0], path=self.environ.get("PATH"))
        if path is None:
            raise FileNotFoundError(errno.ENOENT, "command not found", args[0])
        return ExecTarget(path=path, argv=tuple(args), env=dict(self.environ))

    def run(self, args: Sequence[str], stdin: IO[bytes] | None) -> None:
        if not args:
            raise ValueError("entrypoint requires a command to run")
        credentials = self.read_credentials(stdin)
        if credentials is not None:
            self.install(credentials)
        self.resolve(args).execute(self._execve)
