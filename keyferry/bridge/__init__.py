"""
Container secret bridge.

Sender (host):     DockerLauncher pipes an encoded CredentialSet into
                   `docker run -i --security-opt seccomp=<keyring profile>`.
Receiver (inside): Entrypoint installs each key in the session keyring and
                   execs the container's real command.
"""

from __future__ import annotations

from keyferry.bridge.entrypoint import Entrypoint, ExecTarget
from keyferry.bridge.keyring import SessionKeyring
from keyferry.bridge.launcher import DockerLauncher, load_credentials
from keyferry.bridge.seccomp import (
    KEYRING_RULE,
    default_profile,
    fetch_profile,
    keyring_profile,
    merge_keyring_rule,
    render_profile,
    write_profile,
    write_profile_tempfile,
)

__all__ = [
    "KEYRING_RULE",
    "DockerLauncher",
    "Entrypoint",
    "ExecTarget",
    "SessionKeyring",
    "default_profile",
    "fetch_profile",
    "keyring_profile",
    "load_credentials",
    "merge_keyring_rule",
    "render_profile",
    "write_profile",
    "write_profile_tempfile",
]
