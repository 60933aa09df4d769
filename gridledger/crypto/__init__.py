"""
gridledger cryptographic primitives.

Canonical JSON, SHA-512 digests, Ed25519 signing and key files.
"""

from gridledger.crypto.core import (
    canonical_bytes,
    ed25519_generate_keypair,
    ed25519_sign_hex,
    ed25519_verify_hex,
    rfc8785_canonicalize,
    sha512_hex,
)
from gridledger.crypto.signing import Signer, load_signer, write_key_pair

__all__ = [
    "canonical_bytes",
    "ed25519_generate_keypair",
    "ed25519_sign_hex",
    "ed25519_verify_hex",
    "rfc8785_canonicalize",
    "sha512_hex",
    "Signer",
    "load_signer",
    "write_key_pair",
]
