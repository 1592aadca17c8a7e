"""
Centralized configuration for keyferry.

All configuration is loaded from environment variables with sensible defaults.
There is no module-level singleton: callers load a Config once and pass it
into the operations that need it.

Usage:
    from keyferry.config import load_config
    cfg = load_config()
    print(cfg.vault.path)        # ~/.keyferry/vault.json or $KEYFERRY_VAULT_PATH
    print(cfg.plugin.binary)     # "keyferry-keychain-plugin"
"""

from __future__ import annotations

import getpass
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_PLUGIN_BINARY = "keyferry-keychain-plugin"
DEFAULT_SECCOMP_PROFILE_URL = (
    "https://raw.githubusercontent.com/moby/profiles/refs/heads/main/seccomp/default.json"
)

VAULT_BACKENDS = ("auto", "macos", "file")


@dataclass(frozen=True)
class VaultConfig:
    """Which native vault backs the Secure Note Store."""

    backend: str = "auto"  # auto = macos on darwin, file elsewhere
    path: Path = field(default_factory=lambda: Path.home() / ".keyferry" / "vault.json")
    keychain_path: str = ""  # explicit macOS keychain file; empty = default search list


@dataclass(frozen=True)
class PluginSettings:
    """How the unprivileged client invokes the entitled helper."""

    binary: str = DEFAULT_PLUGIN_BINARY
    timeout: float = 30.0


@dataclass(frozen=True)
class DockerConfig:
    """Container launcher and restricted profile source."""

    binary: str = "docker"
    seccomp_profile_url: str = DEFAULT_SECCOMP_PROFILE_URL


@dataclass(frozen=True)
class Config:
    """Top-level keyferry configuration."""

    workspace: Path = field(default_factory=lambda: Path.home() / ".keyferry")
    account: str = ""
    keychain_type: str = "all"
    log_level: str = ""  # empty = the entry point's own default

    vault: VaultConfig = field(default_factory=VaultConfig)
    plugin: PluginSettings = field(default_factory=PluginSettings)
    docker: DockerConfig = field(default_factory=DockerConfig)


def _current_user(env: Mapping[str, str]) -> str:
    user = env.get("USER", "")
    if user:
        return user
    try:
        return getpass.getuser()
    except OSError:
        return ""


def load_config(environ: Mapping[str, str] | None = None) -> Config:
    """Load configuration from environment variables."""
    env = os.environ if environ is None else environ

    workspace = Path(env.get("KEYFERRY_WORKSPACE", Path.home() / ".keyferry"))

    backend = env.get("KEYFERRY_VAULT", "auto").lower()
    if backend not in VAULT_BACKENDS:
        raise ValueError(
            f"KEYFERRY_VAULT must be one of {', '.join(VAULT_BACKENDS)}, got {backend!r}"
        )

    vault = VaultConfig(
        backend=backend,
        path=Path(env.get("KEYFERRY_VAULT_PATH", workspace / "vault.json")),
        keychain_path=env.get("KEYFERRY_KEYCHAIN_PATH", ""),
    )

    plugin = PluginSettings(
        binary=env.get("KEYFERRY_PLUGIN_BINARY", DEFAULT_PLUGIN_BINARY),
        timeout=float(env.get("KEYFERRY_PLUGIN_TIMEOUT", "30")),
    )

    docker = DockerConfig(
        binary=env.get("KEYFERRY_DOCKER_BINARY", "docker"),
        seccomp_profile_url=env.get("KEYFERRY_SECCOMP_PROFILE_URL", DEFAULT_SECCOMP_PROFILE_URL),
    )

    return Config(
        workspace=workspace,
        account=env.get("KEYFERRY_ACCOUNT", "") or _current_user(env),
        keychain_type=env.get("KEYFERRY_KEYCHAIN_TYPE", "all"),
        log_level=env.get("KEYFERRY_LOG_LEVEL", "").upper(),
        vault=vault,
        plugin=plugin,
        docker=docker,
    )
