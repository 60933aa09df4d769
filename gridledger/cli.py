"""
Grid control CLI (gridctl)

Command-line interface for submitting product and identity actions.

Commands:
    keygen                 Generate a signing key pair
    product create         Create products described in a YAML file
    product update         Update products described in a YAML file
    product delete         Delete products described in a YAML file
    product list           List products
    product show           Show one product
    organization create    Create an organization
    organization update    Update an organization
    agent create           Create an agent for an organization
    agent update           Update an agent

Settings default to the GRID_* environment variables (a local .env file is
honoured); command-line options override them.
"""

import argparse
import getpass
import json
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional

from dotenv import load_dotenv

from gridledger.client import GridClient
from gridledger.config import GridConfig
from gridledger.crypto.signing import load_signer, write_key_pair
from gridledger.errors import GridError
from gridledger.ledger.batch import BatchList, build_batch_list
from gridledger.protocol.actions import ActionType
from gridledger.protocol.payload import Payload, build_payload
from gridledger.yaml_parser import parse_product_yaml

logger = logging.getLogger("gridledger.cli")


def parse_metadata(items: Optional[List[str]]) -> Dict[str, str]:
    """Turn ``key=value`` arguments into an ordered mapping."""
    metadata: Dict[str, str] = {}
    for item in items or []:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise GridError(f"Metadata must be key=value, got {item!r}")
        metadata[key] = value
    return metadata


class GridCtl:
    """gridctl command implementations."""

    def __init__(self, config: GridConfig, client: Optional[GridClient] = None):
        self.config = config
        self.client = client or GridClient(config.url)

    def _submit(self, payloads: List[Payload]) -> BatchList:
        signer = load_signer(self.config.key_name, self.config.key_dir)
        batch_list = build_batch_list(payloads, signer, self.config.max_payload_size)
        self.client.submit_batches(batch_list, wait=self.config.wait)
        return batch_list

    def keygen(self, key_name: Optional[str], force: bool = False) -> None:
        name = key_name or self.config.key_name
        if not name:
            name = getpass.getuser()
        private_path, public_path = write_key_pair(name, self.config.key_dir, force=force)
        print(f"[PASS] Generated key pair private={private_path} public={public_path}")

    def products(self, action_type: ActionType, path: str) -> None:
        payloads = parse_product_yaml(path, action_type)
        batch_list = self._submit(payloads)
        print(
            f"[PASS] {action_type.value} products={len(payloads)} "
            f"batch={batch_list.batch_ids[0][:16]}"
        )

    def list_products(self) -> None:
        print(json.dumps(self.client.list_products(), indent=2, sort_keys=True))

    def show_product(self, product_id: str) -> None:
        print(json.dumps(self.client.fetch_product(product_id), indent=2, sort_keys=True))

    def identity(self, action_type: ActionType, fields: Dict) -> None:
        payload = build_payload(action_type, fields)
        batch_list = self._submit([payload])
        print(f"[PASS] {action_type.value} batch={batch_list.batch_ids[0][:16]}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gridctl",
        description="Grid product ledger CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--url", help="REST gateway URL (default: GRID_DAEMON_ENDPOINT)")
    parser.add_argument("--key", help="Signing key name (default: GRID_DAEMON_KEY or user name)")
    parser.add_argument("--key-dir", help="Key directory (default: GRID_KEY_DIR or ~/.grid/keys)")
    parser.add_argument("--wait", type=int, help="Seconds to wait for commit (default: GRID_WAIT)")
    parser.add_argument("--verbose", "-v", action="count", default=0, help="Increase log output")

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    keygen_parser = subparsers.add_parser("keygen", help="Generate a signing key pair")
    keygen_parser.add_argument("key_name", nargs="?", help="Key file name")
    keygen_parser.add_argument("--force", action="store_true", help="Overwrite existing key files")

    product_parser = subparsers.add_parser("product", help="Product actions")
    product_sub = product_parser.add_subparsers(dest="subcommand")
    for name in ("create", "update", "delete"):
        sub = product_sub.add_parser(name, help=f"{name.capitalize()} products from a YAML file")
        sub.add_argument("--path", required=True, help="Path to the product YAML file")
    product_sub.add_parser("list", help="List products")
    show_parser = product_sub.add_parser("show", help="Show a product")
    show_parser.add_argument("product_id", help="Product id, e.g. a GTIN")

    org_parser = subparsers.add_parser("organization", help="Organization actions")
    org_sub = org_parser.add_subparsers(dest="subcommand")
    org_create = org_sub.add_parser("create", help="Create an organization")
    org_create.add_argument("org_id")
    org_create.add_argument("name")
    org_update = org_sub.add_parser("update", help="Update an organization")
    org_update.add_argument("org_id")
    org_update.add_argument("--name", default="")
    for sub in (org_create, org_update):
        sub.add_argument("--address", default="", help="Street address")
        sub.add_argument("--metadata", nargs="*", help="key=value pairs")

    agent_parser = subparsers.add_parser("agent", help="Agent actions")
    agent_sub = agent_parser.add_subparsers(dest="subcommand")
    for name in ("create", "update"):
        sub = agent_sub.add_parser(name, help=f"{name.capitalize()} an agent")
        sub.add_argument("org_id")
        sub.add_argument("public_key")
        sub.add_argument("--inactive", action="store_true", help="Mark the agent inactive")
        sub.add_argument("--role", action="append", dest="roles", help="Role (repeatable)")
        sub.add_argument("--metadata", nargs="*", help="key=value pairs")

    return parser


def _load_config(args: argparse.Namespace) -> GridConfig:
    config = GridConfig.from_env()
    if args.url:
        config.url = args.url
    if args.key:
        config.key_name = args.key
    if args.key_dir:
        config.key_dir = Path(args.key_dir)
    if args.wait is not None:
        config.wait = args.wait
    if args.verbose:
        config.log_level = "INFO" if args.verbose == 1 else "DEBUG"
    config.validate()
    return config


def run(args: argparse.Namespace, ctl: GridCtl) -> None:
    if args.command == "keygen":
        ctl.keygen(args.key_name, force=args.force)

    elif args.command == "product":
        if args.subcommand in ("create", "update", "delete"):
            ctl.products(ActionType(f"PRODUCT_{args.subcommand.upper()}"), args.path)
        elif args.subcommand == "list":
            ctl.list_products()
        elif args.subcommand == "show":
            ctl.show_product(args.product_id)

    elif args.command == "organization":
        fields = {
            "org_id": args.org_id,
            "name": args.name,
            "address": args.address,
            "metadata": parse_metadata(args.metadata),
        }
        ctl.identity(ActionType(f"ORGANIZATION_{args.subcommand.upper()}"), fields)

    elif args.command == "agent":
        fields = {
            "org_id": args.org_id,
            "public_key": args.public_key,
            "active": not args.inactive,
            "roles": args.roles or [],
            "metadata": parse_metadata(args.metadata),
        }
        ctl.identity(ActionType(f"AGENT_{args.subcommand.upper()}"), fields)


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command or (args.command != "keygen" and not args.subcommand):
        parser.print_help()
        return 1

    try:
        config = _load_config(args)
    except ValueError as err:
        print(f"[FAIL] {err}", file=sys.stderr)
        return 1

    logging.basicConfig(
        level=config.logging_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        run(args, GridCtl(config))
    except GridError as err:
        logger.debug("Command failed", exc_info=True)
        print(f"[FAIL] Command failed: {err}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
