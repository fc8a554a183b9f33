"""Strategy implementations for AMM fleet bots."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Mapping

from utils.config_validator import ConfigurationError

from .base import Strategy, StrategyContext, execute_simulated_swap
from .heartbeat import describe as heartbeat_describe
from .heartbeat import heartbeat_strategy
from .price_band import PriceBandConfig, PriceBandStrategy
from .price_band import describe as price_band_describe
from .random_swap import RandomSwapConfig, RandomSwapStrategy
from .random_swap import describe as random_swap_describe


def _decimal_params(params: Mapping[str, Any]) -> dict[str, Decimal]:
    parsed: dict[str, Decimal] = {}
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, bool):
            raise ConfigurationError(f"Strategy parameter {key} must be a number")
        try:
            parsed[key] = Decimal(str(value))
        except (InvalidOperation, ValueError) as exc:
            raise ConfigurationError(
                f"Strategy parameter {key} must be a number"
            ) from exc
    return parsed


def _build_heartbeat(params: Mapping[str, Any]) -> Strategy:
    if params:
        raise ConfigurationError("heartbeat strategy takes no parameters")
    return heartbeat_strategy


def _build_random_swap(params: Mapping[str, Any]) -> Strategy:
    return RandomSwapStrategy(RandomSwapConfig(**_decimal_params(params)))


def _build_price_band(params: Mapping[str, Any]) -> Strategy:
    return PriceBandStrategy(PriceBandConfig(**_decimal_params(params)))


STRATEGIES: dict[str, Callable[[Mapping[str, Any]], Strategy]] = {
    "heartbeat": _build_heartbeat,
    "random_swap": _build_random_swap,
    "price_band": _build_price_band,
}

DESCRIPTIONS: dict[str, Callable[[], str]] = {
    "heartbeat": heartbeat_describe,
    "random_swap": random_swap_describe,
    "price_band": price_band_describe,
}


def build_strategy(name: str, params: Mapping[str, Any] | None = None) -> Strategy:
    """Instantiate a registered strategy by name."""
    builder = STRATEGIES.get(name)
    if builder is None:
        supported = ", ".join(sorted(STRATEGIES))
        raise ConfigurationError(
            f"Unknown strategy '{name}'. Supported strategies: {supported}"
        )
    try:
        return builder(dict(params or {}))
    except TypeError as exc:
        raise ConfigurationError(f"Invalid parameters for {name}: {exc}") from exc
    except ConfigurationError:
        raise
    except ValueError as exc:
        raise ConfigurationError(f"Invalid parameters for {name}: {exc}") from exc


__all__ = [
    "DESCRIPTIONS",
    "STRATEGIES",
    "Strategy",
    "StrategyContext",
    "build_strategy",
    "execute_simulated_swap",
    "heartbeat_describe",
    "heartbeat_strategy",
    "price_band_describe",
    "random_swap_describe",
]
