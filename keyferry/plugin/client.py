"""Plugin client — runs the entitled helper for one request per call."""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Callable, Sequence

from pydantic import ValidationError

from keyferry.errors import KeyExistsError, KeyNotFoundError, PluginError
from keyferry.plugin.protocol import (
    KEY_EXISTS,
    KEY_NOT_FOUND,
    KeychainConfig,
    Request,
    Response,
    new_request,
    new_write_request,
)

logger = logging.getLogger(__name__)


def _text(data: bytes | str | None) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data


class PluginFS:
    """File-like access to secure notes through the plugin helper.

    Each call starts a fresh helper process, writes one request to its stdin,
    and reads one response from its stdout. The helper is killed if it has not
    answered within ``timeout`` seconds.
    """

    def __init__(
        self,
        config: KeychainConfig,
        binary: str | Sequence[str] | None = None,
        *,
        timeout: float = 30.0,
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
    ):
        self.config = config
        self.binary = binary or config.binary
        self.timeout = timeout
        self._run = runner

    def _command(self) -> list[str]:
        if isinstance(self.binary, str):
            return [self.binary]
        return list(self.binary)

    def call(self, request: Request) -> Response:
        """Send one request and return the helper's successful response."""
        cmd = self._command()
        logger.debug("Calling plugin %s id=%d key=%s", cmd[0], request.id, request.keyname)
        try:
            proc = self._run(
                cmd,
                input=request.to_wire(),
                capture_output=True,
                timeout=self.timeout,
                check=False,
            )
        except FileNotFoundError as e:
            raise PluginError("failed to start plugin", str(e)) from e
        except subprocess.TimeoutExpired as e:
            raise PluginError(
                "plugin timed out", f"no response within {self.timeout}s", _text(e.stderr)
            ) from e

        stderr = _text(proc.stderr)
        if not proc.stdout or not proc.stdout.strip():
            raise PluginError("plugin returned no response", f"exit status {proc.returncode}", stderr)
        try:
            response = Response.model_validate_json(proc.stdout)
        except ValidationError as e:
            raise PluginError("failed to decode plugin response", str(e), stderr) from e

        if response.id != request.id:
            raise PluginError(
                "plugin response id mismatch",
                f"sent {request.id}, received {response.id}",
                stderr,
            )

        if response.error is not None:
            err = response.error
            if err.message == KEY_NOT_FOUND:
                raise KeyNotFoundError(err.detail or request.keyname)
            if err.message == KEY_EXISTS:
                raise KeyExistsError(err.detail or request.keyname)
            raise PluginError(err.message, err.detail, stderr)
        return response

    def read_file(self, name: str) -> bytes:
        response = self.call(new_request(name, self.config))
        return response.contents or b""

    def write_file(self, name: str, data: bytes) -> None:
        self.call(new_write_request(name, data, self.config))
