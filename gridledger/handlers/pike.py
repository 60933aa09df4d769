"""
Identity family handler (pike): organizations and agents.
"""

from __future__ import annotations

import logging

from gridledger.addressing import compute_agent_address, compute_organization_address
from gridledger.errors import InvalidTransaction
from gridledger.handlers.product import validate_timestamp
from gridledger.handlers.state import StateAccessor, find_record, load_records, store_records
from gridledger.protocol.payload import Payload
from gridledger.protocol.pike import (
    AgentCreateAction,
    AgentDeleteAction,
    AgentUpdateAction,
    OrganizationCreateAction,
    OrganizationDeleteAction,
    OrganizationUpdateAction,
)
from gridledger.protocol.state import Agent, Organization

logger = logging.getLogger(__name__)


def _load_organization(accessor: StateAccessor, org_id: str):
    address = compute_organization_address(org_id)
    organizations = load_records(accessor, address, Organization)
    return address, organizations, find_record(organizations, org_id)


def _load_agent(accessor: StateAccessor, public_key: str):
    address = compute_agent_address(public_key)
    agents = load_records(accessor, address, Agent)
    return address, agents, find_record(agents, public_key)


def _create_organization(action: OrganizationCreateAction, accessor: StateAccessor) -> None:
    if not action.org_id:
        raise InvalidTransaction("Organization id cannot be empty string")
    if not action.name:
        raise InvalidTransaction("Organization name cannot be empty string")

    address, organizations, existing = _load_organization(accessor, action.org_id)
    if existing is not None:
        raise InvalidTransaction(f"Organization already exists: {action.org_id}")

    organizations.append(Organization(
        org_id=action.org_id,
        name=action.name,
        address=action.address,
        metadata=action.metadata,
    ))
    store_records(accessor, address, organizations)


def _update_organization(action: OrganizationUpdateAction, accessor: StateAccessor) -> None:
    address, organizations, existing = _load_organization(accessor, action.org_id)
    if existing is None:
        raise InvalidTransaction(f"Organization does not exist: {action.org_id}")

    # Empty fields keep the stored value
    updated = Organization(
        org_id=existing.org_id,
        name=action.name or existing.name,
        address=action.address or existing.address,
        metadata=action.metadata or existing.metadata,
    )
    organizations[organizations.index(existing)] = updated
    store_records(accessor, address, organizations)


def _delete_organization(action: OrganizationDeleteAction, accessor: StateAccessor) -> None:
    address, organizations, existing = _load_organization(accessor, action.org_id)
    if existing is None:
        raise InvalidTransaction(f"Organization does not exist: {action.org_id}")
    organizations.remove(existing)
    store_records(accessor, address, organizations)


def _create_agent(action: AgentCreateAction, accessor: StateAccessor) -> None:
    if not action.public_key:
        raise InvalidTransaction("Public key cannot be empty string")
    if not action.org_id:
        raise InvalidTransaction("Organization id cannot be empty string")

    address, agents, existing = _load_agent(accessor, action.public_key)
    if existing is not None:
        raise InvalidTransaction(f"Agent already exists: {action.public_key}")

    _, _, organization = _load_organization(accessor, action.org_id)
    if organization is None:
        raise InvalidTransaction(f"Organization does not exist: {action.org_id}")

    agents.append(Agent(
        public_key=action.public_key,
        org_id=action.org_id,
        active=action.active,
        roles=action.roles,
        metadata=action.metadata,
    ))
    store_records(accessor, address, agents)


def _update_agent(action: AgentUpdateAction, accessor: StateAccessor) -> None:
    address, agents, existing = _load_agent(accessor, action.public_key)
    if existing is None:
        raise InvalidTransaction(f"Agent does not exist: {action.public_key}")
    if existing.org_id != action.org_id:
        raise InvalidTransaction(
            f"Agent {action.public_key} belongs to {existing.org_id}, not {action.org_id}"
        )

    updated = Agent(
        public_key=existing.public_key,
        org_id=existing.org_id,
        active=action.active,
        roles=action.roles,
        metadata=action.metadata,
    )
    agents[agents.index(existing)] = updated
    store_records(accessor, address, agents)


def _delete_agent(action: AgentDeleteAction, accessor: StateAccessor) -> None:
    address, agents, existing = _load_agent(accessor, action.public_key)
    if existing is None:
        raise InvalidTransaction(f"Agent does not exist: {action.public_key}")
    agents.remove(existing)
    store_records(accessor, address, agents)


_HANDLERS = {
    OrganizationCreateAction: _create_organization,
    OrganizationUpdateAction: _update_organization,
    OrganizationDeleteAction: _delete_organization,
    AgentCreateAction: _create_agent,
    AgentUpdateAction: _update_agent,
    AgentDeleteAction: _delete_agent,
}


def apply_pike_payload(payload: Payload, accessor: StateAccessor) -> None:
    """
    Validate an identity payload and apply it through accessor.

    Raises:
        InvalidTransaction: The payload breaks an identity rule
    """
    validate_timestamp(payload.timestamp)
    handler = _HANDLERS.get(type(payload.action))
    if handler is None:
        raise InvalidTransaction(f"Not an identity action: {payload.action_type.value}")
    handler(payload.action, accessor)
    logger.debug("Applied %s", payload.action_type.value)
