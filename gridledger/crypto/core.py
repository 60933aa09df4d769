"""
Centralized cryptographic core operations for gridledger.

This module provides canonical implementations of:
- RFC 8785 JSON canonicalization
- SHA-512 digests used for payload hashes and state addresses
- Ed25519 key generation, signing and verification

All operations are pure and provide deterministic outputs, so the client and
the ledger compute identical bytes, hashes and addresses.
"""

import json
from typing import Any, Tuple, Union
import hashlib

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519

PUBLIC_KEY_HEX_LENGTH = 64
SIGNATURE_HEX_LENGTH = 128


def rfc8785_canonicalize(obj: Any) -> str:
    """
    Canonicalize JSON according to RFC 8785 (JSON Canonicalization Scheme).

    Rules:
    - Keys sorted lexicographically
    - No insignificant whitespace
    - Unicode emitted as-is (UTF-8), only mandatory escapes
    - Integers in plain decimal form

    Args:
        obj: Python object built from dict, list, tuple, str, int, bool, None

    Returns:
        Canonical JSON string

    Raises:
        TypeError: If obj contains a value with no canonical JSON form
    """
    def serialize_value(v: Any) -> str:
        if v is None:
            return "null"
        elif isinstance(v, bool):
            return "true" if v else "false"
        elif isinstance(v, int):
            return str(v)
        elif isinstance(v, str):
            return json.dumps(v, ensure_ascii=False)
        elif isinstance(v, (list, tuple)):
            items = [serialize_value(item) for item in v]
            return "[" + ",".join(items) + "]"
        elif isinstance(v, dict):
            pairs = []
            for key in sorted(v.keys()):
                if not isinstance(key, str):
                    raise TypeError(f"JSON object keys must be str, got {type(key).__name__}")
                key_str = json.dumps(key, ensure_ascii=False)
                val_str = serialize_value(v[key])
                pairs.append(f"{key_str}:{val_str}")
            return "{" + ",".join(pairs) + "}"
        raise TypeError(f"Value of type {type(v).__name__} has no canonical JSON form")

    return serialize_value(obj)


def canonical_bytes(obj: Any) -> bytes:
    """Canonical JSON of obj, UTF-8 encoded."""
    return rfc8785_canonicalize(obj).encode("utf-8")


def sha512_hex(data: Union[str, bytes]) -> str:
    """
    Compute SHA-512 hash and return as hex string.

    Args:
        data: Input data (string will be UTF-8 encoded)

    Returns:
        128-character hex string
    """
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha512(data).hexdigest()


def ed25519_generate_keypair() -> Tuple[bytes, bytes]:
    """
    Generate Ed25519 keypair.

    Returns:
        Tuple of (private_key_bytes, public_key_bytes)
    """
    private_key = ed25519.Ed25519PrivateKey.generate()
    return private_key_bytes(private_key), public_key_bytes(private_key.public_key())


def private_key_bytes(private_key: ed25519.Ed25519PrivateKey) -> bytes:
    return private_key.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption(),
    )


def public_key_bytes(public_key: ed25519.Ed25519PublicKey) -> bytes:
    return public_key.public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )


def ed25519_sign_hex(data: bytes, private_key: bytes) -> str:
    """
    Sign data with Ed25519 and return the hex-encoded signature.

    Args:
        data: Data to sign
        private_key: 32-byte Ed25519 private key

    Returns:
        128-character hex signature
    """
    private_key_obj = ed25519.Ed25519PrivateKey.from_private_bytes(private_key)
    return private_key_obj.sign(data).hex()


def ed25519_verify_hex(data: bytes, signature_hex: str, public_key_hex: str) -> bool:
    """
    Verify an Ed25519 signature.

    Args:
        data: Data that was signed
        signature_hex: Hex-encoded signature
        public_key_hex: Hex-encoded 32-byte Ed25519 public key

    Returns:
        True if signature is valid, False for a bad signature or malformed key
    """
    try:
        signature = bytes.fromhex(signature_hex)
        public_key_obj = ed25519.Ed25519PublicKey.from_public_bytes(bytes.fromhex(public_key_hex))
    except ValueError:
        return False

    try:
        public_key_obj.verify(signature, data)
    except InvalidSignature:
        return False
    return True


def is_hex(value: str, length: int) -> bool:
    """Return True if value is exactly `length` lowercase hex characters."""
    if not isinstance(value, str) or len(value) != length:
        return False
    return all(ch in "0123456789abcdef" for ch in value)
