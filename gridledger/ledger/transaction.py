"""
Signed transactions.

A transaction wraps one encoded payload with the signer's identity and the
state addresses it may read (inputs) and write (outputs). The header is
encoded canonically and signed with Ed25519; the header signature is the
transaction id.
"""

from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from gridledger.addressing import (
    Namespace,
    is_valid_address,
    namespace_of,
    parse_namespace,
    referenced_addresses,
    required_access,
)
from gridledger.crypto.core import (
    PUBLIC_KEY_HEX_LENGTH,
    SIGNATURE_HEX_LENGTH,
    canonical_bytes,
    ed25519_verify_hex,
    is_hex,
    sha512_hex,
)
from gridledger.crypto.signing import Signer
from gridledger.errors import BuildError, DecodeError, SigningError
from gridledger.protocol.actions import FAMILY_VERSIONS
from gridledger.protocol.codec import encode_payload, parse_canonical_json
from gridledger.protocol.payload import Payload

logger = logging.getLogger(__name__)

MAX_PAYLOAD_SIZE = 1024 * 1024

_HEADER_FIELDS = (
    "batcher_public_key",
    "dependencies",
    "family_name",
    "family_version",
    "inputs",
    "outputs",
    "payload_sha512",
    "signer_public_key",
)


@dataclass(frozen=True)
class TransactionHeader:
    """Signed part of a transaction."""

    family_name: str
    family_version: str
    signer_public_key: str
    batcher_public_key: str
    payload_sha512: str
    inputs: Tuple[str, ...]
    outputs: Tuple[str, ...]
    dependencies: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "batcher_public_key": self.batcher_public_key,
            "dependencies": list(self.dependencies),
            "family_name": self.family_name,
            "family_version": self.family_version,
            "inputs": list(self.inputs),
            "outputs": list(self.outputs),
            "payload_sha512": self.payload_sha512,
            "signer_public_key": self.signer_public_key,
        }

    def to_bytes(self) -> bytes:
        return canonical_bytes(self.to_dict())


def _describe_type(value: Any) -> str:
    return type(value).__name__


def validate_transaction_header(header: Dict[str, Any]) -> Tuple[bool, List[str]]:
    issues: List[str] = []
    if not isinstance(header, dict):
        return False, ["Header must be a dict"]

    extra = sorted(set(header) - set(_HEADER_FIELDS))
    if extra:
        issues.append(f"Unexpected field(s) {extra}")

    def require_field(name: str) -> Any:
        if name not in header:
            issues.append(f"Missing field '{name}'")
            return None
        return header[name]

    family_name = require_field("family_name")
    if family_name is not None and (not isinstance(family_name, str) or family_name not in FAMILY_VERSIONS):
        issues.append(f"Unknown family '{family_name}'")

    family_version = require_field("family_version")
    if family_version is not None and not isinstance(family_version, str):
        issues.append(f"Field 'family_version' must be a str, got {_describe_type(family_version)}")

    for key_field in ("signer_public_key", "batcher_public_key"):
        value = require_field(key_field)
        if value is not None and not is_hex(value, PUBLIC_KEY_HEX_LENGTH):
            issues.append(f"Field '{key_field}' must be {PUBLIC_KEY_HEX_LENGTH} hex characters")

    payload_sha512 = require_field("payload_sha512")
    if payload_sha512 is not None and not is_hex(payload_sha512, 128):
        issues.append("Field 'payload_sha512' must be 128 hex characters")

    for list_field in ("inputs", "outputs"):
        addresses = require_field(list_field)
        if addresses is None:
            continue
        if not isinstance(addresses, list):
            issues.append(f"Field '{list_field}' must be a list, got {_describe_type(addresses)}")
        elif not all(isinstance(a, str) and is_valid_address(a) for a in addresses):
            issues.append(f"Field '{list_field}' contains an invalid address")
        elif addresses != sorted(set(addresses)):
            issues.append(f"Field '{list_field}' must be sorted and free of duplicates")

    dependencies = require_field("dependencies")
    if dependencies is not None:
        if not isinstance(dependencies, list):
            issues.append(f"Field 'dependencies' must be a list, got {_describe_type(dependencies)}")
        elif not all(is_hex(d, SIGNATURE_HEX_LENGTH) for d in dependencies):
            issues.append("Field 'dependencies' must contain transaction ids")

    return len(issues) == 0, issues


def transaction_header_from_bytes(data: bytes) -> TransactionHeader:
    """
    Decode canonical header bytes.

    Raises:
        DecodeError: If the bytes are not a valid, canonically encoded header
    """
    obj = parse_canonical_json(data, "Transaction header")
    valid, issues = validate_transaction_header(obj)
    if not valid:
        raise DecodeError("Invalid transaction header: " + "; ".join(issues))

    header = TransactionHeader(
        family_name=obj["family_name"],
        family_version=obj["family_version"],
        signer_public_key=obj["signer_public_key"],
        batcher_public_key=obj["batcher_public_key"],
        payload_sha512=obj["payload_sha512"],
        inputs=tuple(obj["inputs"]),
        outputs=tuple(obj["outputs"]),
        dependencies=tuple(obj["dependencies"]),
    )
    if header.to_bytes() != bytes(data):
        raise DecodeError("Transaction header bytes are not canonically encoded")
    return header


@dataclass(frozen=True)
class Transaction:
    """
    A signed transaction. Immutable; any change requires rebuilding and
    re-signing.
    """

    header: TransactionHeader
    header_signature: str
    payload: bytes

    @property
    def id(self) -> str:
        return self.header_signature

    def verify(self) -> bool:
        """True if the header signature and payload hash are both valid."""
        if sha512_hex(self.payload) != self.header.payload_sha512:
            return False
        return ed25519_verify_hex(
            self.header.to_bytes(), self.header_signature, self.header.signer_public_key
        )

    def to_wire(self) -> Dict[str, str]:
        return {
            "header": base64.b64encode(self.header.to_bytes()).decode("ascii"),
            "header_signature": self.header_signature,
            "payload": base64.b64encode(self.payload).decode("ascii"),
        }

    @classmethod
    def from_wire(cls, obj: Any) -> "Transaction":
        if not isinstance(obj, dict) or set(obj) != {"header", "header_signature", "payload"}:
            raise DecodeError("Transaction must have exactly header, header_signature and payload")
        if not is_hex(obj["header_signature"], SIGNATURE_HEX_LENGTH):
            raise DecodeError("Transaction header_signature must be 128 hex characters")
        return cls(
            header=transaction_header_from_bytes(b64decode_field(obj["header"], "transaction header")),
            header_signature=obj["header_signature"],
            payload=b64decode_field(obj["payload"], "transaction payload"),
        )


def b64decode_field(value: Any, what: str) -> bytes:
    """Decode a base64 text field of a wire object, raising DecodeError."""
    if not isinstance(value, str):
        raise DecodeError(f"{what} must be base64 text")
    try:
        return base64.b64decode(value.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError) as err:
        raise DecodeError(f"{what} is not valid base64") from err


def _parse_namespaces(namespaces: Iterable[Union[str, Namespace]], label: str) -> List[Namespace]:
    if isinstance(namespaces, str):
        raise BuildError(f"{label} namespaces must be a list, not a single string")
    try:
        return [parse_namespace(ns) for ns in namespaces]
    except ValueError as err:
        raise BuildError(f"Invalid {label} namespace: {err}") from err


def _scoped(refs: Dict[Namespace, List[str]], namespaces: Sequence[Namespace]) -> Tuple[str, ...]:
    return tuple(sorted({address for ns in namespaces for address in refs.get(ns, [])}))


def build_transaction(
    payload: Payload,
    signer: Optional[Signer],
    input_namespaces: Iterable[Union[str, Namespace]],
    output_namespaces: Iterable[Union[str, Namespace]],
    dependencies: Sequence[str] = (),
    batcher_public_key: Optional[str] = None,
    max_payload_size: int = MAX_PAYLOAD_SIZE,
) -> Transaction:
    """
    Build and sign a transaction for one payload.

    Inputs and outputs are the payload's referenced addresses whose namespace
    is in input_namespaces / output_namespaces. A declaration that leaves out
    an address the ledger-side handler must read or write is rejected.

    Args:
        payload: Payload to wrap
        signer: Transaction signer
        input_namespaces: Namespaces the transaction may read
        output_namespaces: Namespaces the transaction may write
        dependencies: Ids of transactions that must be committed first
        batcher_public_key: Key of the batch signer (default: the signer's)
        max_payload_size: Upper bound on the encoded payload in bytes

    Returns:
        The signed Transaction

    Raises:
        BuildError: Malformed payload, oversized payload, bad namespaces or
            dependencies, or under-declared addresses
        SigningError: Missing signer or failed signature
    """
    if signer is None or not callable(getattr(signer, "sign", None)):
        raise SigningError("No signer available to sign the transaction")
    if not isinstance(payload, Payload):
        raise BuildError(f"Expected a Payload, got {type(payload).__name__}")

    try:
        payload_bytes = encode_payload(payload)
    except (TypeError, KeyError, AttributeError, UnicodeEncodeError) as err:
        raise BuildError(f"Malformed payload: {err}") from err
    if len(payload_bytes) > max_payload_size:
        raise BuildError(
            f"Payload is {len(payload_bytes)} bytes, larger than the {max_payload_size} byte limit"
        )

    inputs_ns = _parse_namespaces(input_namespaces, "input")
    outputs_ns = _parse_namespaces(output_namespaces, "output")

    if batcher_public_key is not None and not is_hex(batcher_public_key, PUBLIC_KEY_HEX_LENGTH):
        raise BuildError(f"Batcher public key is malformed: {batcher_public_key!r}")

    dependencies = tuple(dependencies)
    for dependency in dependencies:
        if not is_hex(dependency, SIGNATURE_HEX_LENGTH):
            raise BuildError(f"Dependency is not a transaction id: {dependency!r}")

    signer_public_key = signer.public_key
    refs = referenced_addresses(payload.action, signer_public_key)
    inputs = _scoped(refs, inputs_ns)
    outputs = _scoped(refs, outputs_ns)

    reads, writes = required_access(payload.action)
    for kind, required, declared in (("input", reads, inputs), ("output", writes, outputs)):
        missing = sorted(required - set(declared))
        if missing:
            raise BuildError(
                f"{payload.action_type.value} must declare {kind} address {missing[0]} "
                f"({namespace_of(missing[0]).value} namespace)"
            )

    family_name = payload.family
    header = TransactionHeader(
        family_name=family_name,
        family_version=FAMILY_VERSIONS[family_name],
        signer_public_key=signer_public_key,
        batcher_public_key=batcher_public_key or signer_public_key,
        payload_sha512=sha512_hex(payload_bytes),
        inputs=inputs,
        outputs=outputs,
        dependencies=dependencies,
    )
    header_signature = signer.sign(header.to_bytes())

    logger.debug(
        "Built %s transaction %s (inputs=%d outputs=%d)",
        payload.action_type.value, header_signature[:16], len(inputs), len(outputs),
    )
    return Transaction(header=header, header_signature=header_signature, payload=payload_bytes)
