"""
Product family handler (grid_product).
"""

from __future__ import annotations

import logging
from typing import List

from gridledger.addressing import compute_product_address
from gridledger.errors import InvalidTransaction
from gridledger.handlers.state import StateAccessor, find_record, load_records, store_records
from gridledger.protocol.payload import Payload
from gridledger.protocol.product import (
    ProductCreateAction,
    ProductDeleteAction,
    ProductUpdateAction,
)
from gridledger.protocol.schema import PropertyValue
from gridledger.protocol.state import Product

logger = logging.getLogger(__name__)


def validate_timestamp(timestamp: int) -> None:
    if timestamp == 0:
        raise InvalidTransaction("Timestamp is not set")


def _load_product(accessor: StateAccessor, product_id: str):
    address = compute_product_address(product_id)
    products = load_records(accessor, address, Product)
    return address, products, find_record(products, product_id)


def _merge_properties(current, updates) -> tuple:
    """Replace properties by name, appending names not yet present."""
    merged: List[PropertyValue] = list(current)
    for update in updates:
        for index, existing in enumerate(merged):
            if existing.name == update.name:
                merged[index] = update
                break
        else:
            merged.append(update)
    return tuple(merged)


def _create(action: ProductCreateAction, accessor: StateAccessor) -> None:
    if not action.product_id:
        raise InvalidTransaction("product_id cannot be empty string")
    if not action.owner:
        raise InvalidTransaction("Owner cannot be empty string")

    address, products, existing = _load_product(accessor, action.product_id)
    if existing is not None:
        raise InvalidTransaction(f"Product already exists: {action.product_id}")

    products.append(Product(
        product_id=action.product_id,
        product_type=action.product_type,
        owner=action.owner,
        properties=action.properties,
    ))
    store_records(accessor, address, products)


def _existing_product(action, accessor: StateAccessor):
    address, products, existing = _load_product(accessor, action.product_id)
    if existing is None:
        raise InvalidTransaction(f"Product does not exist: {action.product_id}")
    if existing.product_type is not action.product_type:
        raise InvalidTransaction(
            f"Product type does not match: {action.product_id} is "
            f"{existing.product_type.value}, not {action.product_type.value}"
        )
    return address, products, existing


def _update(action: ProductUpdateAction, accessor: StateAccessor) -> None:
    address, products, existing = _existing_product(action, accessor)
    updated = Product(
        product_id=existing.product_id,
        product_type=existing.product_type,
        owner=existing.owner,
        properties=_merge_properties(existing.properties, action.properties),
    )
    products[products.index(existing)] = updated
    store_records(accessor, address, products)


def _delete(action: ProductDeleteAction, accessor: StateAccessor) -> None:
    address, products, existing = _existing_product(action, accessor)
    products.remove(existing)
    store_records(accessor, address, products)


_HANDLERS = {
    ProductCreateAction: _create,
    ProductUpdateAction: _update,
    ProductDeleteAction: _delete,
}


def apply_product_payload(payload: Payload, accessor: StateAccessor) -> None:
    """
    Validate a product payload and apply it through accessor.

    Raises:
        InvalidTransaction: The payload breaks a product rule
    """
    validate_timestamp(payload.timestamp)
    handler = _HANDLERS.get(type(payload.action))
    if handler is None:
        raise InvalidTransaction(f"Not a product action: {payload.action_type.value}")
    handler(payload.action, accessor)
    logger.debug("Applied %s for product %s", payload.action_type.value, payload.action.product_id)
