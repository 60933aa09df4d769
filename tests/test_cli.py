"""
Tests for the gridctl command line.
"""

import pytest

from gridledger.cli import build_parser, main, parse_metadata
from gridledger.client import GridClient
from gridledger.crypto.signing import write_key_pair
from gridledger.errors import GridError
from gridledger.ledger.batch import BatchList
from gridledger.protocol.codec import decode_payload

PRODUCT_YAML = """
- product_id: "723382885088"
  product_type: GS1
  owner: acme
  properties:
    - {name: weight, data_type: NUMBER, number_value: 500}
"""


@pytest.fixture
def submitted(monkeypatch):
    """Capture batch lists instead of posting them."""
    batches = []

    def fake_submit(self, batch_list, wait=0):
        batches.append(batch_list)
        return []

    monkeypatch.setattr(GridClient, "submit_batches", fake_submit)
    return batches


@pytest.fixture
def cli_env(monkeypatch, key_dir):
    for name in ("GRID_DAEMON_ENDPOINT", "GRID_DAEMON_KEY", "GRID_WAIT", "GRID_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("GRID_KEY_DIR", str(key_dir))
    return key_dir


def test_parse_metadata():
    assert parse_metadata(["gln=0614141000005", "note=a=b"]) == {"gln": "0614141000005", "note": "a=b"}
    assert parse_metadata(None) == {}
    with pytest.raises(GridError, match="key=value"):
        parse_metadata(["novalue"])


def test_parser_agent_roles():
    args = build_parser().parse_args(["agent", "create", "acme", "ab" * 32, "--role", "admin", "--role", "can_create_product"])
    assert args.roles == ["admin", "can_create_product"]
    assert not args.inactive


def test_no_command_prints_help(capsys):
    assert main([]) == 1
    assert "usage: gridctl" in capsys.readouterr().out


def test_keygen(cli_env, capsys):
    assert main(["keygen", "alice"]) == 0
    assert (cli_env / "alice.priv").exists()
    assert (cli_env / "alice.pub").exists()
    assert "[PASS] Generated key pair" in capsys.readouterr().out


def test_keygen_refuses_overwrite(cli_env, capsys):
    assert main(["keygen", "alice"]) == 0
    assert main(["keygen", "alice"]) == 1
    assert "[FAIL] Command failed: File already exists" in capsys.readouterr().err


def test_product_create(cli_env, submitted, tmp_path, capsys):
    write_key_pair("alice", cli_env)
    path = tmp_path / "products.yaml"
    path.write_text(PRODUCT_YAML)

    assert main(["--key", "alice", "product", "create", "--path", str(path)]) == 0

    (batch_list,) = submitted
    assert isinstance(batch_list, BatchList)
    (txn,) = batch_list.batches[0].transactions
    assert decode_payload(txn.payload).action.product_id == "723382885088"
    assert [a[:8] for a in txn.header.outputs] == ["621dee02"]
    assert "[PASS] PRODUCT_CREATE products=1" in capsys.readouterr().out


def test_organization_create(cli_env, submitted):
    write_key_pair("alice", cli_env)
    assert main([
        "--key", "alice", "organization", "create", "acme", "Acme Corp", "--metadata", "gln=123",
    ]) == 0
    payload = decode_payload(submitted[0].batches[0].transactions[0].payload)
    assert payload.action.name == "Acme Corp"
    assert payload.action.metadata[0].key == "gln"


def test_missing_yaml_file(cli_env, submitted, capsys):
    write_key_pair("alice", cli_env)
    assert main(["--key", "alice", "product", "create", "--path", "/nonexistent.yaml"]) == 1
    assert "YAML file not found" in capsys.readouterr().err
    assert submitted == []


def test_missing_key(cli_env, submitted, tmp_path, capsys):
    path = tmp_path / "products.yaml"
    path.write_text(PRODUCT_YAML)
    assert main(["--key", "nobody", "product", "create", "--path", str(path)]) == 1
    assert "No such key file" in capsys.readouterr().err


def test_invalid_config(cli_env, capsys):
    assert main(["--url", "grid:8000", "product", "list"]) == 1
    assert "[FAIL] Invalid grid configuration" in capsys.readouterr().err
