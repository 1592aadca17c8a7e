"""Tests for keyferry.config — environment-driven configuration."""

from pathlib import Path

import pytest

from keyferry.config import (
    DEFAULT_PLUGIN_BINARY,
    DEFAULT_SECCOMP_PROFILE_URL,
    Config,
    DockerConfig,
    PluginSettings,
    VaultConfig,
    load_config,
)


class TestDefaults:
    def test_vault(self):
        vault = VaultConfig()
        assert vault.backend == "auto"
        assert vault.path.name == "vault.json"
        assert vault.keychain_path == ""

    def test_plugin(self):
        plugin = PluginSettings()
        assert plugin.binary == "keyferry-keychain-plugin"
        assert plugin.timeout == 30.0

    def test_docker(self):
        docker = DockerConfig()
        assert docker.binary == "docker"
        assert docker.seccomp_profile_url.endswith("seccomp/default.json")

    def test_frozen(self):
        cfg = Config()
        with pytest.raises(AttributeError):
            cfg.account = "other"  # type: ignore[misc]


class TestLoadConfig:
    def test_empty_environment(self):
        cfg = load_config({"USER": "alice"})
        assert cfg.account == "alice"
        assert cfg.keychain_type == "all"
        assert cfg.log_level == ""
        assert cfg.vault.backend == "auto"
        assert cfg.vault.path == cfg.workspace / "vault.json"
        assert cfg.plugin.binary == DEFAULT_PLUGIN_BINARY
        assert cfg.docker.seccomp_profile_url == DEFAULT_SECCOMP_PROFILE_URL

    def test_overrides(self, tmp_path: Path):
        cfg = load_config(
            {
                "KEYFERRY_WORKSPACE": str(tmp_path),
                "KEYFERRY_VAULT": "FILE",
                "KEYFERRY_KEYCHAIN_PATH": "/tmp/login.keychain-db",
                "KEYFERRY_KEYCHAIN_TYPE": "icloud",
                "KEYFERRY_ACCOUNT": "bob",
                "KEYFERRY_PLUGIN_BINARY": "/opt/kc-plugin",
                "KEYFERRY_PLUGIN_TIMEOUT": "2.5",
                "KEYFERRY_DOCKER_BINARY": "podman",
                "KEYFERRY_SECCOMP_PROFILE_URL": "https://example.test/p.json",
                "KEYFERRY_LOG_LEVEL": "debug",
                "USER": "alice",
            }
        )
        assert cfg.workspace == tmp_path
        assert cfg.vault.backend == "file"
        assert cfg.vault.path == tmp_path / "vault.json"
        assert cfg.vault.keychain_path == "/tmp/login.keychain-db"
        assert cfg.keychain_type == "icloud"
        assert cfg.account == "bob"
        assert cfg.plugin.binary == "/opt/kc-plugin"
        assert cfg.plugin.timeout == 2.5
        assert cfg.docker.binary == "podman"
        assert cfg.docker.seccomp_profile_url == "https://example.test/p.json"
        assert cfg.log_level == "DEBUG"

    def test_vault_path_override(self, tmp_path: Path):
        cfg = load_config({"KEYFERRY_VAULT_PATH": str(tmp_path / "elsewhere.json"), "USER": "a"})
        assert cfg.vault.path == tmp_path / "elsewhere.json"

    def test_invalid_vault(self):
        with pytest.raises(ValueError, match="KEYFERRY_VAULT"):
            load_config({"KEYFERRY_VAULT": "s3"})

    def test_reads_os_environ(self, monkeypatch, clean_env):
        monkeypatch.setenv("KEYFERRY_ACCOUNT", "from-env")
        assert load_config().account == "from-env"
