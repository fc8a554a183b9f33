#!/usr/bin/env python3
"""Store the wallet store passphrase in the OS keychain."""

from __future__ import annotations

import argparse
import getpass
import os
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent / "src"))

from utils.credentials import (  # noqa: E402
    DEFAULT_PASSPHRASE_ENV,
    DEFAULT_SERVICE_NAME,
    store_wallet_passphrase,
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Store the wallet store passphrase in the OS keychain."
    )
    parser.add_argument(
        "--service-name",
        default=DEFAULT_SERVICE_NAME,
        help=f"Keyring service name (default: {DEFAULT_SERVICE_NAME}).",
    )
    return parser


def main() -> int:
    parser = build_parser()
    args = parser.parse_args()
    passphrase = os.getenv(DEFAULT_PASSPHRASE_ENV)

    if not passphrase:
        passphrase = getpass.getpass("Enter wallet passphrase: ")
        confirm = getpass.getpass("Confirm wallet passphrase: ")
        if passphrase != confirm:
            print("Passphrases do not match.", file=sys.stderr)
            return 1

    try:
        store_wallet_passphrase(args.service_name, passphrase)
    except (RuntimeError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    print(f"Stored wallet passphrase in keychain for service '{args.service_name}'.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
