"""Configuration validation utilities for the AMM fleet toolkit."""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import Any

SUPPORTED_NETWORKS = {"devnet", "mainnet-beta"}
# Base58 alphabet, 32 to 44 characters.
_ADDRESS_PATTERN = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")


class ConfigurationError(ValueError):
    """Raised when configuration or call parameters are invalid."""


def validate_positive_decimal(
    config: dict[str, Any], field: str, *, required: bool = True
) -> None:
    """Validate that a field is a positive decimal value."""
    if field not in config:
        if required:
            raise ConfigurationError(f"Missing required field: {field}")
        return

    decimal_value = _parse_decimal(config, field)
    if decimal_value <= 0:
        raise ConfigurationError(f"{field} must be positive, got: {decimal_value}")


def validate_non_negative_decimal(
    config: dict[str, Any], field: str, *, required: bool = True
) -> None:
    """Validate that a field is a non-negative decimal value."""
    if field not in config:
        if required:
            raise ConfigurationError(f"Missing required field: {field}")
        return

    decimal_value = _parse_decimal(config, field)
    if decimal_value < 0:
        raise ConfigurationError(
            f"{field} must be non-negative, got: {decimal_value}"
        )


def validate_positive_integer(
    config: dict[str, Any], field: str, *, required: bool = True, minimum: int = 1
) -> None:
    """Validate that a field is an integer at or above ``minimum``."""
    if field not in config:
        if required:
            raise ConfigurationError(f"Missing required field: {field}")
        return

    value = config[field]
    if not isinstance(value, int) or isinstance(value, bool):
        raise ConfigurationError(
            f"{field} must be an integer, got: {type(value).__name__}"
        )

    if value < minimum:
        raise ConfigurationError(f"{field} must be >= {minimum}, got: {value}")


def validate_percentage(
    config: dict[str, Any], field: str, *, required: bool = True
) -> None:
    """Validate that a field is a percentage between 0 and 100."""
    if field not in config:
        if required:
            raise ConfigurationError(f"Missing required field: {field}")
        return

    decimal_value = _parse_decimal(config, field)
    if not (Decimal("0") <= decimal_value <= Decimal("100")):
        raise ConfigurationError(
            f"{field} must be between 0 and 100, got: {decimal_value}"
        )


def validate_choice(
    config: dict[str, Any], field: str, choices: set[str], *, required: bool = True
) -> None:
    """Validate that a field is one of the allowed choices."""
    if field not in config:
        if required:
            raise ConfigurationError(f"Missing required field: {field}")
        return

    value = config[field]
    if not isinstance(value, str):
        raise ConfigurationError(
            f"{field} must be a string, got: {type(value).__name__}"
        )

    if value not in choices:
        choices_str = ", ".join(sorted(choices))
        raise ConfigurationError(
            f"{field} must be one of [{choices_str}], got: {value}"
        )


def validate_url(config: dict[str, Any], field: str = "rpc_endpoint") -> None:
    """Validate that a URL field is properly formatted."""
    if field not in config:
        return  # Endpoints default per network

    url = config[field]
    if not isinstance(url, str) or not url.strip():
        raise ConfigurationError(f"{field} must be a non-empty string")

    if not re.match(r"^https?://", url, re.IGNORECASE):
        raise ConfigurationError(
            f"{field} must start with http:// or https://, got: {url}"
        )


def validate_address(config: dict[str, Any], field: str, *, required: bool = True) -> None:
    """Validate that a field looks like a base58 account address."""
    if field not in config:
        if required:
            raise ConfigurationError(f"Missing required field: {field}")
        return

    value = config[field]
    if not isinstance(value, str) or not _ADDRESS_PATTERN.match(value.strip()):
        raise ConfigurationError(f"{field} must be a base58 address, got: {value}")


def validate_pool_config(pool: Any) -> None:
    """Validate an inline simulated pool definition."""
    if not isinstance(pool, dict):
        raise ConfigurationError("pool must be a mapping")
    validate_address(pool, "token_address", required=True)
    validate_positive_decimal(pool, "reserve_sol", required=True)
    validate_positive_decimal(pool, "reserve_token", required=True)
    validate_positive_integer(pool, "token_decimals", required=False, minimum=0)


def validate_fund_config(config: dict[str, Any]) -> None:
    """Validate configuration for a funding run."""
    validate_positive_decimal(config, "total_amount", required=True)
    validate_positive_integer(config, "duration_minutes", required=True, minimum=1)
    validate_choice(config, "network", SUPPORTED_NETWORKS, required=True)
    validate_url(config)
    validate_positive_integer(config, "wallet_count", required=False, minimum=1)
    validate_non_negative_decimal(config, "min_delay_sec", required=False)
    validate_positive_decimal(config, "max_delay_sec", required=False)
    if "min_delay_sec" in config and "max_delay_sec" in config:
        if Decimal(str(config["min_delay_sec"])) > Decimal(
            str(config["max_delay_sec"])
        ):
            raise ConfigurationError("min_delay_sec must be <= max_delay_sec")
    validate_positive_decimal(config, "funding_timeout_sec", required=False)


def validate_fleet_config(config: dict[str, Any]) -> None:
    """Validate configuration for running the bot fleet."""
    validate_choice(config, "network", SUPPORTED_NETWORKS, required=True)
    validate_positive_integer(config, "interval_ms", required=False, minimum=1)
    validate_positive_integer(config, "fee_bps", required=False, minimum=0)
    validate_percentage(config, "slippage_percent", required=False)
    validate_positive_decimal(config, "run_seconds", required=False)
    if "strategy" in config and (
        not isinstance(config["strategy"], str) or not config["strategy"].strip()
    ):
        raise ConfigurationError("strategy must be a non-empty string")
    if "strategy_params" in config and not isinstance(
        config["strategy_params"], dict
    ):
        raise ConfigurationError("strategy_params must be a mapping")
    if "pool" in config:
        validate_pool_config(config["pool"])


def validate_quote_config(config: dict[str, Any]) -> None:
    """Validate a standalone quote request."""
    validate_positive_decimal(config, "input_amount", required=True)
    validate_non_negative_decimal(config, "reserve_sol", required=True)
    validate_non_negative_decimal(config, "reserve_token", required=True)
    validate_positive_integer(config, "token_decimals", required=False, minimum=0)
    validate_choice(config, "side", {"buy", "sell"}, required=False)
    validate_positive_integer(config, "fee_bps", required=False, minimum=0)
    validate_percentage(config, "slippage_percent", required=False)


def validate_config(config: dict[str, Any], command: str | None = None) -> None:
    """
    Validate configuration for a specific command.

    Args:
        config: Configuration dictionary
        command: Command name (e.g., 'fund', 'fleet', 'quote')

    Raises:
        ConfigurationError: If configuration is invalid
    """
    if not isinstance(config, dict):
        raise ConfigurationError("Configuration must be a dictionary")

    if not config:
        raise ConfigurationError("Configuration cannot be empty")

    if command == "fund":
        validate_fund_config(config)
    elif command == "fleet":
        validate_fleet_config(config)
    elif command == "quote":
        validate_quote_config(config)
    elif command is not None:
        validate_url(config)


def _parse_decimal(config: dict[str, Any], field: str) -> Decimal:
    value = config[field]
    if isinstance(value, bool):
        raise ConfigurationError(f"{field} must be a valid number, got: {value}")
    try:
        decimal_value = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError) as exc:
        raise ConfigurationError(
            f"{field} must be a valid number, got: {value}"
        ) from exc
    if not decimal_value.is_finite():
        raise ConfigurationError(f"{field} must be a finite number, got: {value}")
    return decimal_value
