"""Summary: Command-line interface for ShopLink.

Importance: Provides operator workflows for provisioning shops and checking connections.
Alternatives: Build an admin UI first.
"""

from __future__ import annotations

import argparse
import getpass
import logging
import sys

from shoplink.app import build_services
from shoplink.config import AppConfig
from shoplink.errors import DecryptionFailed, InvalidRequest, ShopLinkError
from shoplink.token_cipher import looks_encrypted


def build_parser() -> argparse.ArgumentParser:
    """Summary: Build the CLI argument parser.

    Importance: Defines supported commands for local operation.
    Alternatives: Use a CLI framework like Typer or Click.
    """

    parser = argparse.ArgumentParser(description="ShopLink CLI")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init-db", help="Create database tables")

    add_shop = subparsers.add_parser("add-shop", help="Provision a shop with client credentials")
    add_shop.add_argument("shop_id", type=str)
    add_shop.add_argument("domain", type=str)
    add_shop.add_argument("client_id", type=str)
    add_shop.add_argument(
        "--client-secret",
        type=str,
        default=None,
        help="Read from a prompt when omitted",
    )

    subparsers.add_parser("list-shops", help="List shops and their connection status")

    auth_url = subparsers.add_parser("auth-url", help="Print an authorization URL for a shop")
    auth_url.add_argument("shop_id", type=str)

    test_connection = subparsers.add_parser(
        "test-connection", help="Decrypt the stored token and probe the provider"
    )
    test_connection.add_argument("shop_id", type=str)

    encrypt = subparsers.add_parser("encrypt", help="Encrypt a value with the master key")
    encrypt.add_argument("--stdin", action="store_true", help="Read the value from stdin")

    decrypt = subparsers.add_parser("decrypt", help="Check that a stored blob decrypts")
    decrypt.add_argument("blob", type=str)
    decrypt.add_argument("--show", action="store_true", help="Print the plaintext")

    serve = subparsers.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", type=str, default=None)
    serve.add_argument("--port", type=int, default=None)
    return parser


def run_cli(argv: list[str] | None = None) -> int:
    """Summary: Execute CLI commands based on arguments.

    Importance: Drives operator workflows without the HTTP API.
    Alternatives: Invoke services via the HTTP API.
    """

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    parser = build_parser()
    args = parser.parse_args(argv)
    config = AppConfig.from_env()

    if args.command == "serve":
        import uvicorn

        config.require_secrets()
        uvicorn.run(
            "shoplink.api:build_app",
            factory=True,
            host=args.host or config.api_host,
            port=args.port or config.api_port,
        )
        return 0

    services = build_services(config)

    if args.command == "init-db":
        print(f"Initialized database at {config.db_path}.")
        return 0

    if args.command == "add-shop":
        secret = args.client_secret or getpass.getpass("Client secret: ")
        try:
            record = services.connections.provision_shop(
                args.shop_id, args.domain, args.client_id, secret
            )
        except InvalidRequest as exc:
            print(str(exc), file=sys.stderr)
            return 1
        print(f"Provisioned shop {record.id} ({record.provider_domain}).")
        return 0

    if args.command == "list-shops":
        for record in services.connections.list_shops():
            token_state = "encrypted" if looks_encrypted(record.encrypted_access_token) else "none"
            print(
                f"{record.id}: {record.provider_domain} "
                f"status={record.connection_status} auth={record.auth_type} token={token_state}"
            )
        return 0

    if args.command == "auth-url":
        record = services.store.get_shop(args.shop_id)
        if record is None or not record.provider_domain or not record.client_id:
            print(f"Shop {args.shop_id} is not provisioned.", file=sys.stderr)
            return 1
        print(
            services.authorization.build_authorization_url(
                record.id, record.provider_domain, record.client_id
            )
        )
        return 0

    if args.command == "test-connection":
        try:
            ok = services.connections.test_connection(args.shop_id)
        except ShopLinkError as exc:
            print(f"Connection test failed: {exc}", file=sys.stderr)
            return 1
        print("Connection ok." if ok else "Connection failed; status set to error.")
        return 0 if ok else 1

    if args.command == "encrypt":
        value = sys.stdin.read().strip() if args.stdin else getpass.getpass("Value: ")
        print(services.cipher.encrypt(value))
        return 0

    if args.command == "decrypt":
        try:
            plaintext = services.cipher.decrypt(args.blob)
        except DecryptionFailed as exc:
            print(str(exc), file=sys.stderr)
            return 1
        print(plaintext if args.show else f"Decrypted {len(plaintext)} characters.")
        return 0

    parser.error(f"Unknown command: {args.command}")
    return 2


def main() -> None:
    sys.exit(run_cli())


if __name__ == "__main__":
    main()
