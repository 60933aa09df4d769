"""
Signer credentials and local key files.

Keys are stored as hex-encoded raw Ed25519 keys in ``<key_dir>/<name>.priv``
and ``<key_dir>/<name>.pub``. Building transactions only ever needs a Signer;
the private key bytes never leave it.
"""

from __future__ import annotations

import getpass
import logging
import os
from pathlib import Path
from typing import Optional, Tuple

from cryptography.hazmat.primitives.asymmetric import ed25519

from gridledger.crypto.core import (
    ed25519_generate_keypair,
    ed25519_sign_hex,
    public_key_bytes,
)
from gridledger.errors import SigningError

logger = logging.getLogger(__name__)

DEFAULT_KEY_DIR = Path("~/.grid/keys")


class Signer:
    """
    Holds an Ed25519 private key and signs bytes with it.

    Usage:
        signer = Signer.generate()
        signature = signer.sign(header_bytes)
    """

    def __init__(self, private_key: bytes):
        if not isinstance(private_key, (bytes, bytearray)) or len(private_key) != 32:
            raise SigningError("Ed25519 private key must be 32 bytes")
        self._private_key = bytes(private_key)
        key_obj = ed25519.Ed25519PrivateKey.from_private_bytes(self._private_key)
        self._public_key_hex = public_key_bytes(key_obj.public_key()).hex()

    @classmethod
    def generate(cls) -> "Signer":
        private_key, _ = ed25519_generate_keypair()
        return cls(private_key)

    @classmethod
    def from_hex(cls, private_key_hex: str) -> "Signer":
        """Create a signer from a hex-encoded private key."""
        try:
            private_key = bytes.fromhex(private_key_hex.strip())
        except (AttributeError, ValueError) as err:
            raise SigningError("Private key is not valid hex") from err
        return cls(private_key)

    @property
    def public_key(self) -> str:
        """Hex-encoded public key."""
        return self._public_key_hex

    def sign(self, data: bytes) -> str:
        """Return the hex signature of data."""
        try:
            return ed25519_sign_hex(data, self._private_key)
        except (TypeError, ValueError) as err:
            raise SigningError(f"Failed to sign: {err}") from err

    def __repr__(self) -> str:
        return f"Signer(public_key={self._public_key_hex[:16]}...)"


def _key_paths(key_name: str, key_dir: Path) -> Tuple[Path, Path]:
    key_dir = Path(key_dir).expanduser()
    return key_dir / f"{key_name}.priv", key_dir / f"{key_name}.pub"


def load_signer(key_name: Optional[str] = None, key_dir: Optional[Path] = None) -> Signer:
    """
    Load a signer from a private key file.

    Args:
        key_name: Key file stem (default: current user name)
        key_dir: Directory holding key files (default: ~/.grid/keys)

    Returns:
        Signer for the stored key

    Raises:
        SigningError: If the key file is missing, unreadable or malformed
    """
    key_name = key_name or getpass.getuser()
    private_path, _ = _key_paths(key_name, key_dir or DEFAULT_KEY_DIR)

    if not private_path.exists():
        raise SigningError(f"No such key file: {private_path}")

    try:
        private_key_hex = private_path.read_text(encoding="utf-8")
    except OSError as err:
        raise SigningError(f"Unable to read key file {private_path}: {err}") from err

    signer = Signer.from_hex(private_key_hex)
    logger.debug("Loaded signing key %s (%s)", private_path, signer.public_key[:16])
    return signer


def write_key_pair(key_name: str, key_dir: Optional[Path] = None, force: bool = False) -> Tuple[Path, Path]:
    """
    Generate a key pair and write it to ``<key_dir>/<key_name>.priv|.pub``.

    Returns:
        (private_key_path, public_key_path)

    Raises:
        SigningError: If the files exist and force is False
    """
    private_path, public_path = _key_paths(key_name, key_dir or DEFAULT_KEY_DIR)

    if not force:
        for path in (private_path, public_path):
            if path.exists():
                raise SigningError(f"File already exists: {path}")

    private_key, public_key = ed25519_generate_keypair()
    private_path.parent.mkdir(parents=True, exist_ok=True)

    private_path.write_text(private_key.hex() + "\n", encoding="utf-8")
    os.chmod(private_path, 0o600)
    public_path.write_text(public_key.hex() + "\n", encoding="utf-8")

    logger.info("Wrote key pair %s / %s", private_path, public_path)
    return private_path, public_path
