"""CLI entry point for the AMM fleet toolkit."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import tomllib
from decimal import Decimal
from pathlib import Path
from typing import Any

from amm.quote import DEFAULT_FEE_BPS, quote
from amm.reserves import PoolReserves
from engine.fleet_runner import (
    DEFAULT_WALLET_DIR,
    build_wallet_store,
    load_fleet_wallets,
    run_fleet,
    run_funding,
)
from strategies import DESCRIPTIONS
from utils.config_validator import (
    SUPPORTED_NETWORKS,
    ConfigurationError,
    validate_config,
)
from utils.logging_config import LogContext, setup_logging
from utils.wallet_store import WalletStoreError

LOGGER = logging.getLogger("amm_fleet.cli")

SUPPORTED_FORMATS = (".json", ".toml", ".yaml", ".yml")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="AMM fleet toolkit CLI")
    parser.add_argument("--version", action="version", version="amm-fleet 0.1.0")
    subparsers = parser.add_subparsers(dest="command", required=True)

    fund_parser = subparsers.add_parser(
        "fund", help="Distribute SOL to fresh fleet wallets through intermediate hops."
    )
    fund_parser.add_argument(
        "--config", required=True, help="Path to JSON/TOML/YAML config file."
    )
    fund_parser.add_argument(
        "--no-save",
        action="store_true",
        help="Do not persist funded wallets to the encrypted wallet store.",
    )
    _add_log_level(fund_parser)
    fund_parser.set_defaults(handler=run_fund)

    fleet_parser = subparsers.add_parser(
        "fleet", help="Run one strategy per wallet against the simulated pool."
    )
    fleet_parser.add_argument(
        "--config", required=True, help="Path to JSON/TOML/YAML config file."
    )
    fleet_parser.add_argument(
        "--run-seconds",
        type=float,
        help="Stop the fleet after this many seconds (overrides run_seconds).",
    )
    _add_log_level(fleet_parser)
    fleet_parser.set_defaults(handler=run_fleet_command)

    quote_parser = subparsers.add_parser(
        "quote", help="Quote a constant-product swap for the given reserves."
    )
    quote_parser.add_argument("--input", required=True, help="Input amount.")
    quote_parser.add_argument(
        "--side",
        choices=("buy", "sell"),
        default="buy",
        help="buy spends SOL for tokens, sell spends tokens for SOL.",
    )
    quote_parser.add_argument("--reserve-sol", required=True, help="SOL reserve.")
    quote_parser.add_argument("--reserve-token", required=True, help="Token reserve.")
    quote_parser.add_argument(
        "--token-decimals", type=int, default=9, help="Token decimals (default: 9)."
    )
    quote_parser.add_argument(
        "--fee-bps",
        type=int,
        default=DEFAULT_FEE_BPS,
        help=f"Pool fee in basis points (default: {DEFAULT_FEE_BPS}).",
    )
    quote_parser.add_argument(
        "--slippage", default="1", help="Slippage tolerance in percent (default: 1)."
    )
    _add_log_level(quote_parser)
    quote_parser.set_defaults(handler=run_quote)

    wallets_parser = subparsers.add_parser(
        "wallets", help="Inspect or clear the encrypted wallet store."
    )
    wallets_parser.add_argument("action", choices=("list", "clear"))
    wallets_parser.add_argument(
        "--network", required=True, choices=sorted(SUPPORTED_NETWORKS)
    )
    wallets_parser.add_argument(
        "--wallet-dir",
        default=DEFAULT_WALLET_DIR,
        help=f"Wallet store directory (default: {DEFAULT_WALLET_DIR}).",
    )
    _add_log_level(wallets_parser)
    wallets_parser.set_defaults(handler=run_wallets)

    subparsers.add_parser(
        "strategies", help="List the available strategies."
    ).set_defaults(handler=run_list_strategies)
    return parser


def _add_log_level(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (DEBUG, INFO, WARNING, ERROR).",
    )


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if hasattr(args, "handler"):
        return args.handler(args)
    parser.print_help()
    return 1


def run_fund(args: argparse.Namespace) -> int:
    configure_logging(args.log_level)
    try:
        config = load_config(Path(args.config).expanduser())
        try:
            validate_config(config, "fund")
        except ConfigurationError as exc:
            LOGGER.error("Configuration validation failed: %s", exc)
            return 2
        store = None if args.no_save else build_wallet_store(config)
        with LogContext(network=config["network"]):
            funded = asyncio.run(run_funding(config, store=store))
        LOGGER.info("Funded %s wallets on %s", len(funded), config["network"])
    except (FileNotFoundError, RuntimeError, ValueError) as exc:
        LOGGER.error(str(exc))
        return 2
    except Exception as exc:  # pragma: no cover - safeguard for unexpected issues.
        LOGGER.exception("Unexpected error during funding run: %s", exc)
        return 3
    return 0


def run_fleet_command(args: argparse.Namespace) -> int:
    configure_logging(args.log_level)
    try:
        config = load_config(Path(args.config).expanduser())
        if args.run_seconds is not None:
            config["run_seconds"] = args.run_seconds
        try:
            validate_config(config, "fleet")
        except ConfigurationError as exc:
            LOGGER.error("Configuration validation failed: %s", exc)
            return 2
        wallets = load_fleet_wallets(config)
        if not wallets:
            LOGGER.error(
                "No wallets stored for %s. Run 'fund' first or set wallets: ephemeral.",
                config["network"],
            )
            return 2
        strategy_name = config.get("strategy", "heartbeat")
        description = DESCRIPTIONS.get(strategy_name)
        if description is not None:
            LOGGER.info("Strategy description: %s", description())
        with LogContext(network=config["network"]):
            logs = asyncio.run(run_fleet(config, wallets))
        for bot_id, entries in logs.items():
            errors = sum(1 for entry in entries if entry.is_error)
            LOGGER.info("Bot %s: %s log entries, %s errors", bot_id, len(entries), errors)
    except KeyboardInterrupt:
        LOGGER.info("Fleet interrupted by user.")
    except (FileNotFoundError, RuntimeError, ValueError) as exc:
        LOGGER.error(str(exc))
        return 2
    except Exception as exc:  # pragma: no cover - safeguard for unexpected issues.
        LOGGER.exception("Unexpected error while running the fleet: %s", exc)
        return 3
    return 0


def run_quote(args: argparse.Namespace) -> int:
    configure_logging(args.log_level)
    request = {
        "input_amount": args.input,
        "side": args.side,
        "reserve_sol": args.reserve_sol,
        "reserve_token": args.reserve_token,
        "token_decimals": args.token_decimals,
        "fee_bps": args.fee_bps,
        "slippage_percent": args.slippage,
    }
    try:
        validate_config(request, "quote")
    except ConfigurationError as exc:
        LOGGER.error("Invalid quote request: %s", exc)
        return 2
    reserves = PoolReserves(
        reserve_sol=Decimal(args.reserve_sol),
        reserve_token=Decimal(args.reserve_token),
        token_decimals=args.token_decimals,
    )
    result = quote(
        Decimal(args.input),
        args.side == "buy",
        reserves,
        args.fee_bps,
        Decimal(args.slippage),
    )
    if result is None:
        LOGGER.error("No quote available for the given reserves.")
        return 2
    print(
        json.dumps(
            {
                "side": args.side,
                "estimated_output": str(result.estimated_output),
                "min_amount_out": result.min_amount_out,
                "price_impact_percent": str(result.price_impact_percent),
                "execution_price": str(result.execution_price),
                "degenerate": result.is_degenerate,
            },
            indent=2,
        )
    )
    return 0


def run_wallets(args: argparse.Namespace) -> int:
    configure_logging(args.log_level)
    try:
        store = build_wallet_store({"wallet_dir": args.wallet_dir})
        if args.action == "clear":
            store.clear(args.network)
            LOGGER.info("Cleared stored wallets for %s", args.network)
            return 0
        for wallet in store.load(args.network):
            print(wallet.pubkey())
    except (WalletStoreError, ValueError) as exc:
        LOGGER.error(str(exc))
        return 2
    return 0


def run_list_strategies(args: argparse.Namespace) -> int:
    for name in sorted(DESCRIPTIONS):
        print(f"{name}: {DESCRIPTIONS[name]()}")
    return 0


def configure_logging(level: str) -> None:
    """Configure logging with sanitization and proper formatting."""
    setup_logging(level=level, sanitize=True, structured=False)


def load_config(config_path: Path) -> dict[str, Any]:
    if not config_path.exists():
        raise FileNotFoundError(
            f"Config file not found: {config_path}. Ensure the path is correct and readable."
        )
    suffix = config_path.suffix.lower()
    if suffix not in SUPPORTED_FORMATS:
        supported = ", ".join(SUPPORTED_FORMATS)
        raise ValueError(
            f"Unsupported config format '{suffix}'. Supported formats: {supported}."
        )
    try:
        if suffix == ".json":
            data = json.loads(config_path.read_text(encoding="utf-8"))
        elif suffix == ".toml":
            data = load_toml(config_path)
        else:
            data = load_yaml(config_path)
    except json.JSONDecodeError as exc:
        raise ValueError(
            f"Invalid JSON in config file {config_path}: {exc}. Validate the file format."
        ) from exc
    except (RuntimeError, ValueError):
        raise
    except Exception as exc:
        raise RuntimeError(
            f"Failed to parse config file {config_path}: {exc}."
        ) from exc
    if not isinstance(data, dict):
        raise ValueError(
            f"Config file {config_path} must contain a JSON/TOML/YAML object mapping."
        )
    return data


def load_toml(config_path: Path) -> dict[str, Any]:
    return tomllib.loads(config_path.read_text(encoding="utf-8"))


def load_yaml(config_path: Path) -> dict[str, Any]:
    import yaml

    data = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(
            f"YAML config file {config_path} must contain a mapping at the top level."
        )
    return data


if __name__ == "__main__":
    raise SystemExit(main())
