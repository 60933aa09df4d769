"""
State address scheme.

An address is 70 lowercase hex characters: the owning namespace's fixed
prefix (plus an optional subspace tag) followed by the leading characters of
the SHA-512 of the identifier. Client and ledger must compute addresses
bit-for-bit identically, so everything here is a pure function of its inputs.

    identity  cad11d   agents: cad11d00 + sha512(public_key)
                       organizations: cad11d01 + sha512(org_id)
    schema    621dee01 + sha512(schema_name)
    product   621dee02 + sha512(product_id)
"""

from __future__ import annotations

from enum import Enum
from types import MappingProxyType
from typing import Dict, List, Mapping, Set, Tuple, Union

from gridledger.crypto.core import is_hex, sha512_hex
from gridledger.protocol.actions import Action
from gridledger.protocol.pike import (
    AgentCreateAction,
    AgentDeleteAction,
    AgentUpdateAction,
    OrganizationCreateAction,
    OrganizationDeleteAction,
    OrganizationUpdateAction,
)
from gridledger.protocol.product import (
    ProductCreateAction,
    ProductDeleteAction,
    ProductUpdateAction,
)

ADDRESS_LENGTH = 70

PIKE_NAMESPACE = "cad11d"
GRID_SCHEMA_NAMESPACE = "621dee01"
GRID_PRODUCT_NAMESPACE = "621dee02"

PIKE_AGENT_SUBSPACE = "00"
PIKE_ORGANIZATION_SUBSPACE = "01"


class Namespace(str, Enum):
    IDENTITY = "identity"
    SCHEMA = "schema"
    PRODUCT = "product"


NAMESPACE_PREFIXES: Mapping[Namespace, str] = MappingProxyType({
    Namespace.IDENTITY: PIKE_NAMESPACE,
    Namespace.SCHEMA: GRID_SCHEMA_NAMESPACE,
    Namespace.PRODUCT: GRID_PRODUCT_NAMESPACE,
})


def parse_namespace(namespace: Union[str, Namespace]) -> Namespace:
    """
    Resolve a namespace from its member, name ("product") or prefix ("621dee02").

    Raises:
        ValueError: If nothing in the registry matches
    """
    if isinstance(namespace, Namespace):
        return namespace
    for member, prefix in NAMESPACE_PREFIXES.items():
        if namespace in (member.value, prefix):
            return member
    raise ValueError(f"Unknown namespace: {namespace!r}")


def compute_address(namespace: Union[str, Namespace], identifier: str, subspace: str = "") -> str:
    """
    Derive the state address of identifier within namespace.

    Args:
        namespace: Owning namespace
        identifier: Domain identifier (product id, org id, public key, schema name)
        subspace: Hex tag partitioning the namespace further

    Returns:
        70-character hex address beginning with the namespace prefix
    """
    if not isinstance(identifier, str):
        raise TypeError(f"identifier must be a str, got {type(identifier).__name__}")
    prefix = NAMESPACE_PREFIXES[parse_namespace(namespace)] + subspace
    return prefix + sha512_hex(identifier)[: ADDRESS_LENGTH - len(prefix)]


def compute_agent_address(public_key: str) -> str:
    return compute_address(Namespace.IDENTITY, public_key, PIKE_AGENT_SUBSPACE)


def compute_organization_address(org_id: str) -> str:
    return compute_address(Namespace.IDENTITY, org_id, PIKE_ORGANIZATION_SUBSPACE)


def compute_schema_address(schema_name: str) -> str:
    return compute_address(Namespace.SCHEMA, schema_name)


def compute_product_address(product_id: str) -> str:
    return compute_address(Namespace.PRODUCT, product_id)


def is_valid_address(address: str) -> bool:
    return is_hex(address, ADDRESS_LENGTH) and any(
        address.startswith(prefix) for prefix in NAMESPACE_PREFIXES.values()
    )


def namespace_of(address: str) -> Namespace:
    """
    The namespace owning an address.

    Raises:
        ValueError: If the address is malformed or begins with no known prefix
    """
    if is_hex(address, ADDRESS_LENGTH):
        for namespace, prefix in NAMESPACE_PREFIXES.items():
            if address.startswith(prefix):
                return namespace
    raise ValueError(f"Not a known state address: {address!r}")


def referenced_addresses(action: Action, signer_public_key: str) -> Dict[Namespace, List[str]]:
    """
    Every address an action references, grouped by namespace.

    The signer's agent record is always referenced. Lists keep first-seen
    order and contain no duplicates.
    """
    refs: List[str] = [compute_agent_address(signer_public_key)]

    if isinstance(action, ProductCreateAction):
        refs += [
            compute_organization_address(action.owner),
            compute_schema_address(action.product_type.schema_name),
            compute_product_address(action.product_id),
        ]
    elif isinstance(action, ProductUpdateAction):
        refs += [
            compute_schema_address(action.product_type.schema_name),
            compute_product_address(action.product_id),
        ]
    elif isinstance(action, ProductDeleteAction):
        refs.append(compute_product_address(action.product_id))
    elif isinstance(action, (OrganizationCreateAction, OrganizationUpdateAction, OrganizationDeleteAction)):
        refs.append(compute_organization_address(action.org_id))
    elif isinstance(action, (AgentCreateAction, AgentUpdateAction)):
        refs += [
            compute_agent_address(action.public_key),
            compute_organization_address(action.org_id),
        ]
    elif isinstance(action, AgentDeleteAction):
        refs.append(compute_agent_address(action.public_key))
    else:
        raise TypeError(f"Unsupported action: {type(action).__name__}")

    grouped: Dict[Namespace, List[str]] = {}
    for address in refs:
        bucket = grouped.setdefault(namespace_of(address), [])
        if address not in bucket:
            bucket.append(address)
    return grouped


def required_access(action: Action) -> Tuple[Set[str], Set[str]]:
    """
    Addresses the ledger-side handler reads and writes for an action.

    Returns:
        (reads, writes)
    """
    if isinstance(action, (ProductCreateAction, ProductUpdateAction, ProductDeleteAction)):
        product = compute_product_address(action.product_id)
        return {product}, {product}
    if isinstance(action, (OrganizationCreateAction, OrganizationUpdateAction, OrganizationDeleteAction)):
        organization = compute_organization_address(action.org_id)
        return {organization}, {organization}
    if isinstance(action, AgentCreateAction):
        agent = compute_agent_address(action.public_key)
        return {agent, compute_organization_address(action.org_id)}, {agent}
    if isinstance(action, (AgentUpdateAction, AgentDeleteAction)):
        agent = compute_agent_address(action.public_key)
        return {agent}, {agent}
    raise TypeError(f"Unsupported action: {type(action).__name__}")
