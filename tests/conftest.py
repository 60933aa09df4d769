# tests/conftest.py
import pytest

from gridledger.crypto.signing import Signer
from gridledger.protocol.actions import ActionType
from gridledger.protocol.payload import build_payload
from gridledger.protocol.schema import DataType, build_property_value

PRODUCT_ID = "723382885088"
OWNER = "acme"


@pytest.fixture
def signer() -> Signer:
    return Signer.generate()


@pytest.fixture
def weight():
    return build_property_value("weight", DataType.NUMBER, number_value=500)


@pytest.fixture
def create_payload(weight):
    """Factory for PRODUCT_CREATE payloads with overridable fields."""

    def factory(product_id=PRODUCT_ID, owner=OWNER, properties=None, timestamp=1700000000):
        return build_payload(
            ActionType.PRODUCT_CREATE,
            {
                "product_id": product_id,
                "product_type": "GS1",
                "owner": owner,
                "properties": [weight] if properties is None else properties,
            },
            timestamp=timestamp,
        )

    return factory


@pytest.fixture
def key_dir(tmp_path):
    directory = tmp_path / "keys"
    directory.mkdir()
    return directory
