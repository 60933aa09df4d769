"""
End-to-end: YAML file -> payloads -> signed batch list -> wire -> ledger state.
"""

import pytest

from gridledger.addressing import compute_product_address
from gridledger.errors import BuildError
from gridledger.handlers import InMemoryState, TransactionProcessor
from gridledger.ledger.batch import BatchList, build_batch_list
from gridledger.protocol.product import ProductType
from gridledger.protocol.state import Product, decode_records
from gridledger.yaml_parser import parse_product_yaml

PRODUCT_YAML = """\
- product_id: "723382885088"
  product_type: GS1
  owner: acme
  properties:
    - name: weight
      data_type: NUMBER
      number_value: 500
"""


@pytest.fixture
def product_file(tmp_path):
    path = tmp_path / "products.yaml"
    path.write_text(PRODUCT_YAML)
    return path


def test_create_product_from_yaml(product_file, signer, weight):
    payloads = parse_product_yaml(product_file, "PRODUCT_CREATE", timestamp=1700000000)
    batch_list = build_batch_list(payloads, signer)

    (batch,) = batch_list.batches
    (txn,) = batch.transactions
    address = compute_product_address("723382885088")
    assert txn.header.outputs == (address,)

    # Through the wire, as a validator would receive it
    received = BatchList.from_bytes(batch_list.to_bytes())
    state = InMemoryState()
    TransactionProcessor().apply_batch(received.batches[0], state)

    assert list(state.as_dict()) == [address]
    assert decode_records(Product, state.get(address)) == [
        Product("723382885088", ProductType.GS1, "acme", (weight,)),
    ]


def test_empty_owner_builds_nothing(tmp_path, signer):
    path = tmp_path / "products.yaml"
    path.write_text(PRODUCT_YAML.replace("owner: acme", 'owner: ""'))
    with pytest.raises(BuildError, match="owner cannot be empty string"):
        build_batch_list(parse_product_yaml(path, "PRODUCT_CREATE"), signer)
