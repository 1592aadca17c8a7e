"""Container launch — docker run with the keyring profile and piped credentials."""

from __future__ import annotations

import logging
import shlex
import subprocess
from collections.abc import Callable, Mapping, Sequence
from pathlib import Path
from typing import Any, Protocol

from keyferry.bridge.seccomp import write_profile_tempfile
from keyferry.credentials import CredentialSet, parse_key_list, write_message

logger = logging.getLogger(__name__)


class FileSource(Protocol):
    """Anything with read_file: a SecureNoteReader or a PluginFS."""

    def read_file(self, name: str) -> bytes: ...


def load_credentials(
    *,
    keys_file: Path | str | None = None,
    keychain_item: str | None = None,
    source: FileSource | None = None,
) -> CredentialSet | None:
    """Load the key list to send: from a local file, or from a keychain item."""
    if keys_file:
        return parse_key_list(Path(keys_file).read_bytes())
    if keychain_item:
        if source is None:
            raise ValueError("a keychain item requires a source to read it from")
        return parse_key_list(source.read_file(keychain_item))
    return None


class DockerLauncher:
    """Run a container with credentials written to its stdin."""

    def __init__(
        self,
        binary: str = "docker",
        popen: Callable[..., subprocess.Popen] = subprocess.Popen,
    ):
        self.binary = binary
        self._popen = popen

    def build_command(self, profile_path: Path | str, args: Sequence[str]) -> list[str]:
        """docker run -i --security-opt seccomp=<profile> <args...>"""
        args = list(args)
        if args and args[0] == "--":
            args = args[1:]
        if args and args[0] == "run":
            args = args[1:]
        return [self.binary, "run", "-i", "--security-opt", f"seccomp={profile_path}", *args]

    def run(
        self,
        args: Sequence[str],
        profile: Mapping[str, Any],
        credentials: CredentialSet | None = None,
    ) -> int:
        """Launch the container and return its exit status.

        The temporary profile is removed once docker has been started and the
        credentials have been written to it.
        """
        profile_path = write_profile_tempfile(profile)
        try:
            cmd = self.build_command(profile_path, args)
            logger.info("Running %s", shlex.join(cmd))
            proc = self._popen(cmd, stdin=subprocess.PIPE)
            try:
                if credentials is not None:
                    write_message(proc.stdin, credentials)
            except BrokenPipeError:
                logger.warning("Container exited before reading its credentials")
            finally:
                try:
                    proc.stdin.close()
                except BrokenPipeError:
                    # close() flushes; the reader is already gone
                    pass
        finally:
            profile_path.unlink(missing_ok=True)
        return proc.wait()
