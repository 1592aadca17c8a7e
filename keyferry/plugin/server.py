"""
Plugin server — the entitled side of the plugin protocol.

A helper binary reads exactly one request from stdin, performs the Secure
Note Store operation it asks for, writes exactly one response to stdout and
exits. Every failure, including malformed input, becomes an error response.
"""

from __future__ import annotations

import dataclasses
import json
import logging
from collections.abc import Callable
from typing import BinaryIO

from pydantic import ValidationError
from pydantic_core import PydanticSerializationError

from keyferry.config import VaultConfig
from keyferry.errors import KeyExistsError, KeyferryError, KeyNotFoundError
from keyferry.keychain import BackendKind, new_readonly_store, new_store, open_vault
from keyferry.keychain.vault import VaultBackend
from keyferry.plugin.protocol import (
    ErrorDetail,
    KeychainConfig,
    Request,
    Response,
    decode_sys_specific,
    key_exists,
    key_not_found,
)

logger = logging.getLogger(__name__)


def _salvage_id(raw: bytes) -> int:
    """Best-effort correlation id from a request that failed validation."""
    try:
        doc = json.loads(raw)
    except (ValueError, UnicodeDecodeError):
        return 0
    if isinstance(doc, dict) and isinstance(doc.get("id"), int):
        return doc["id"]
    return 0


class PluginServer:
    """Handles plugin requests against the local vault."""

    def __init__(
        self,
        vault_config: VaultConfig | None = None,
        *,
        vault_factory: Callable[[VaultConfig], VaultBackend] = open_vault,
        log: logging.Logger | None = None,
    ):
        self.vault_config = vault_config or VaultConfig()
        self._vault_factory = vault_factory
        self.log = log or logger

    def _error(self, request_id: int, message: str, detail: str) -> Response:
        self.log.error("plugin error id=%d message=%r error=%r", request_id, message, detail)
        return Response(id=request_id, error=ErrorDetail(message=message, detail=detail))

    def read_request(
        self, stream: BinaryIO
    ) -> tuple[KeychainConfig | None, Request | None, Response | None]:
        """Decode one request.

        Returns (config, request, None) on success, or (None, None, response)
        where response is the error to send back to the caller.
        """
        raw = stream.read()
        try:
            request = Request.model_validate_json(raw)
        except ValidationError as e:
            return None, None, self._error(_salvage_id(raw), "failed to decode request", str(e))
        try:
            config = decode_sys_specific(request.sys_specific)
        except KeyferryError as e:
            return None, None, self._error(request.id, "failed to unmarshal sys_specific", str(e))

        self.log.info(
            "new request id=%d keychain_path=%s account=%s key=%s type=%s "
            "accessibility=%s write=%s update_in_place=%s",
            request.id,
            config.keychain_path,
            config.account,
            request.keyname,
            config.keychain_type,
            config.accessibility,
            str(request.write).lower(),
            str(config.update_in_place).lower(),
        )
        return config, request, None

    def _vault_for(self, config: KeychainConfig) -> VaultBackend:
        vault_config = self.vault_config
        if config.keychain_path:
            vault_config = dataclasses.replace(vault_config, keychain_path=config.keychain_path)
        return self._vault_factory(vault_config)

    def _handle_write(self, vault: VaultBackend, config: KeychainConfig, request: Request) -> Response:
        if config.keychain_type is BackendKind.ALL:
            return self._error(
                request.id, "failed to write secure note", "keychain type 'all' cannot be written"
            )
        store = new_store(
            vault,
            config.keychain_type,
            config.account,
            update_in_place=config.update_in_place,
            accessibility=config.accessibility,
        )
        try:
            store.write(request.keyname, request.contents or b"")
        except KeyExistsError:
            return request.new_response(error=key_exists(request.keyname))
        except KeyNotFoundError:
            # update-in-place raced with a delete
            return request.new_response(error=key_not_found(request.keyname))
        except KeyferryError as e:
            return self._error(request.id, "failed to write secure note", str(e))
        return request.new_response()

    def _handle_read(self, vault: VaultBackend, config: KeychainConfig, request: Request) -> Response:
        reader = new_readonly_store(vault, config.keychain_type, config.account)
        try:
            data = reader.read(request.keyname)
        except KeyNotFoundError:
            return request.new_response(error=key_not_found(request.keyname))
        except KeyferryError as e:
            return self._error(request.id, "failed to read secure note", str(e))
        return request.new_response(contents=data)

    def handle_request(self, config: KeychainConfig, request: Request) -> Response:
        """Perform the store operation the request asks for."""
        try:
            vault = self._vault_for(config)
        except (KeyferryError, OSError) as e:
            return self._error(request.id, "failed to open keychain", str(e))
        try:
            if request.write:
                return self._handle_write(vault, config, request)
            return self._handle_read(vault, config, request)
        except Exception as e:
            # The client must still get exactly one response.
            self.log.exception("unexpected failure handling request id=%d", request.id)
            return self._error(request.id, "failed to handle request", str(e))

    def send_response(self, stream: BinaryIO, response: Response) -> None:
        """Write the response. A response that cannot be marshaled is replaced
        by an error response carrying the same id."""
        response = response.model_copy(update={"sys_specific": None})
        try:
            output = response.to_wire()
        except (PydanticSerializationError, TypeError, ValueError) as e:
            self.log.error("failed to marshal response id=%d error=%s", response.id, e)
            response = Response(
                id=response.id,
                error=ErrorDetail(message="failed to marshal response", detail=str(e)),
            )
            output = response.to_wire()
        try:
            stream.write(output)
            stream.flush()
        except OSError as e:
            self.log.error("failed to write response id=%d error=%s", response.id, e)
            return
        self.log.info(
            "sent response id=%d error=%s",
            response.id,
            response.error.message if response.error else None,
        )

    def serve(self, stdin: BinaryIO, stdout: BinaryIO) -> None:
        """Handle exactly one request/response exchange."""
        config, request, response = self.read_request(stdin)
        if response is None:
            response = self.handle_request(config, request)
        self.send_response(stdout, response)
