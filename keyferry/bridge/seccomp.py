"""
Restricted execution profile for containers that need the session keyring.

Docker's default seccomp profile blocks add_key(2) and keyctl(2). The keyring
profile is a baseline profile (the upstream moby default, or the copy shipped
in keyferry/bridge/data) with one allow rule for those two syscalls put first
in ``syscalls``.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import httpx

from keyferry.errors import ProfileError

logger = logging.getLogger(__name__)

KEYRING_RULE: dict[str, Any] = {"names": ["keyctl", "add_key"], "action": "SCMP_ACT_ALLOW"}

DEFAULT_PROFILE_PATH = Path(__file__).parent / "data" / "default-seccomp.json"


def merge_keyring_rule(profile: Mapping[str, Any]) -> dict[str, Any]:
    """Return a copy of profile with KEYRING_RULE prepended to its syscalls."""
    if not isinstance(profile, Mapping):
        raise ProfileError("seccomp profile must be a JSON object")
    syscalls = profile.get("syscalls", [])
    if not isinstance(syscalls, list):
        raise ProfileError("seccomp profile 'syscalls' must be a list")
    merged = copy.deepcopy(dict(profile))
    merged["syscalls"] = [copy.deepcopy(KEYRING_RULE), *copy.deepcopy(syscalls)]
    return merged


def load_profile(data: bytes | str) -> dict[str, Any]:
    try:
        profile = json.loads(data)
    except (ValueError, UnicodeDecodeError) as e:
        raise ProfileError(f"invalid seccomp profile: {e}") from e
    if not isinstance(profile, dict):
        raise ProfileError("seccomp profile must be a JSON object")
    return profile


def fetch_profile(url: str, *, client: httpx.Client | None = None, timeout: float = 30.0) -> dict[str, Any]:
    """Download a baseline profile."""
    logger.info("Fetching seccomp profile from %s", url)
    try:
        if client is None:
            resp = httpx.get(url, timeout=timeout, follow_redirects=True)
        else:
            resp = client.get(url, timeout=timeout, follow_redirects=True)
        resp.raise_for_status()
    except httpx.HTTPError as e:
        raise ProfileError(f"failed to download {url}: {e}") from e
    return load_profile(resp.content)


def default_profile() -> dict[str, Any]:
    """The baseline profile shipped with keyferry."""
    return load_profile(DEFAULT_PROFILE_PATH.read_bytes())


def keyring_profile(url: str | None = None, *, offline: bool = False, client: httpx.Client | None = None) -> dict[str, Any]:
    """Baseline (fetched, or embedded when offline or no url) plus the keyring rule."""
    baseline = default_profile() if offline or not url else fetch_profile(url, client=client)
    return merge_keyring_rule(baseline)


def render_profile(profile: Mapping[str, Any]) -> bytes:
    return json.dumps(profile, indent="\t").encode("utf-8")


def write_profile(profile: Mapping[str, Any], path: Path | str) -> Path:
    """Write the profile with mode 600, replacing any existing file."""
    path = Path(path)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "wb") as f:
        f.write(render_profile(profile))
    return path


def write_profile_tempfile(profile: Mapping[str, Any]) -> Path:
    """Write the profile to a fresh temp file; the caller removes it."""
    fd, name = tempfile.mkstemp(prefix="keyferry-seccomp-", suffix=".json")
    with os.fdopen(fd, "wb") as f:
        f.write(render_profile(profile))
    return Path(name)
