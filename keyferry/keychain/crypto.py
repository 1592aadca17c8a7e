"""
AES-256-GCM encryption for the local file vault.

Master key is a 32-byte random key stored next to the vault as .vault-key (chmod 600).
Each payload gets a unique 12-byte nonce prepended to the ciphertext.
"""

from __future__ import annotations

import secrets
import stat
from pathlib import Path

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

KEY_FILENAME = ".vault-key"
NONCE_SIZE = 12
TAG_SIZE = 16


def init_master_key(directory: Path | str) -> Path:
    """Generate a new master key file. Returns the path. Skips if the key already exists."""
    key_path = Path(directory) / KEY_FILENAME
    if key_path.exists():
        return key_path
    key_path.parent.mkdir(parents=True, exist_ok=True)
    key_path.write_bytes(secrets.token_bytes(32))
    key_path.chmod(stat.S_IRUSR | stat.S_IWUSR)  # 600
    return key_path


def load_master_key(directory: Path | str) -> bytes:
    """Load the master key from disk."""
    key_path = Path(directory) / KEY_FILENAME
    if not key_path.exists():
        raise FileNotFoundError(f"Vault master key not found at {key_path}.")
    key = key_path.read_bytes()
    if len(key) != 32:
        raise ValueError(f"Vault master key must be 32 bytes, got {len(key)}")
    return key


def encrypt(plaintext: bytes, master_key: bytes, associated_data: bytes | None = None) -> bytes:
    """Encrypt with AES-256-GCM. Returns nonce (12 bytes) + ciphertext + tag (16 bytes)."""
    nonce = secrets.token_bytes(NONCE_SIZE)
    return nonce + AESGCM(master_key).encrypt(nonce, plaintext, associated_data)


def decrypt(data: bytes, master_key: bytes, associated_data: bytes | None = None) -> bytes:
    """Decrypt nonce + ciphertext + tag back to plaintext."""
    if len(data) < NONCE_SIZE + TAG_SIZE:
        raise ValueError("Encrypted data too short")
    return AESGCM(master_key).decrypt(data[:NONCE_SIZE], data[NONCE_SIZE:], associated_data)
