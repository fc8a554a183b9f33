#!/usr/bin/env python3
"""
Bot fleet runner for the simulated AMM pool.

Loads wallets from the encrypted wallet store (or generates ephemeral ones),
starts one bot per wallet with the configured strategy and runs until
run_seconds elapse or Ctrl+C.

Usage:
    python run_fleet.py fleet.yml
    python run_fleet.py fleet.yml --run-seconds 60
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any

import yaml

sys.path.insert(0, str(Path(__file__).parent / "src"))

from engine.fleet_runner import load_fleet_wallets, run_fleet  # noqa: E402
from utils.config_validator import ConfigurationError, validate_config  # noqa: E402
from utils.logging_config import setup_logging  # noqa: E402

logger = logging.getLogger(__name__)


def load_config(config_file: str) -> dict[str, Any]:
    with open(config_file, "r") as handle:
        return yaml.safe_load(handle) or {}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run the AMM bot fleet.")
    parser.add_argument("config", help="Path to YAML config file.")
    parser.add_argument(
        "--run-seconds", type=float, help="Stop after this many seconds."
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level.")
    return parser


def main() -> int:
    args = build_parser().parse_args()
    setup_logging(level=args.log_level, sanitize=True)

    config_path = Path(args.config)
    if not config_path.exists():
        logger.error(f"Config file '{config_path}' not found.")
        return 1
    config = load_config(str(config_path))
    if args.run_seconds is not None:
        config["run_seconds"] = args.run_seconds
    try:
        validate_config(config, "fleet")
    except ConfigurationError as exc:
        logger.error(f"Invalid config: {exc}")
        return 2

    try:
        wallets = load_fleet_wallets(config)
    except (RuntimeError, ValueError) as exc:
        logger.error(f"Could not load wallets: {exc}")
        return 2
    if not wallets:
        logger.error("No wallets available; fund the fleet first.")
        return 2
    try:
        logs = asyncio.run(run_fleet(config, wallets))
    except KeyboardInterrupt:
        logger.info("Fleet stopped by user")
        return 0
    for bot_id, entries in logs.items():
        latest = entries[0].message if entries else "(no output)"
        logger.info(f"{bot_id}: {latest}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
