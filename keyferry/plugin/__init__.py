"""
Plugin protocol — lets an unprivileged client ask the entitled helper to
perform Secure Note Store operations on its behalf.

    client = PluginFS(KeychainConfig(keychain_type="data-protection-local"))
    client.read_file("github-token")
"""

from __future__ import annotations

from keyferry.plugin.client import PluginFS
from keyferry.plugin.protocol import (
    ErrorDetail,
    KeychainConfig,
    Request,
    Response,
    decode_sys_specific,
    encode_sys_specific,
    key_exists,
    key_not_found,
    new_request,
    new_write_request,
)
from keyferry.plugin.server import PluginServer

__all__ = [
    "ErrorDetail",
    "KeychainConfig",
    "PluginFS",
    "PluginServer",
    "Request",
    "Response",
    "decode_sys_specific",
    "encode_sys_specific",
    "key_exists",
    "key_not_found",
    "new_request",
    "new_write_request",
]
