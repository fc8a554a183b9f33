"""Randomized multi-hop funding plans for fleet wallets."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal, InvalidOperation

from solders.keypair import Keypair

from utils.config_validator import ConfigurationError

LOGGER = logging.getLogger("amm_fleet.engine.funding_planner")

DEFAULT_WALLET_COUNT = 6
DEFAULT_MIN_DELAY_SEC = 5
DEFAULT_MAX_DELAY_SEC = 35
JITTER_LOW = 0.9
JITTER_HIGH = 1.1


@dataclass(frozen=True)
class FundingPlan:
    total_amount: Decimal
    amounts: tuple[Decimal, ...]
    delays_ms: tuple[int, ...]

    @property
    def wallet_count(self) -> int:
        return len(self.amounts)

    def schedule_ms(self) -> list[int]:
        """Cumulative offsets from the start of the run, one per wallet."""
        offsets: list[int] = []
        elapsed = 0
        for delay in self.delays_ms:
            elapsed += delay
            offsets.append(elapsed)
        return offsets


class FundingPlanner:
    """Splits a total amount across wallets and spreads sends over a window.

    Every amount but the last is the even share perturbed by +/-10%, rounded
    down to ``amount_decimals``; the last amount is the exact residual, so the
    amounts always sum to the requested total.
    """

    def __init__(
        self,
        rng: random.Random | None = None,
        *,
        min_delay_sec: float = DEFAULT_MIN_DELAY_SEC,
        max_delay_sec: float = DEFAULT_MAX_DELAY_SEC,
        amount_decimals: int = 9,
    ) -> None:
        if min_delay_sec < 0 or max_delay_sec < min_delay_sec:
            raise ConfigurationError("Delay bounds must satisfy 0 <= min <= max")
        if amount_decimals < 0:
            raise ConfigurationError("amount_decimals must be non-negative")
        self._rng = rng or random.Random()
        self.min_delay_sec = min_delay_sec
        self.max_delay_sec = max_delay_sec
        self._quantum = Decimal(1).scaleb(-amount_decimals)

    def plan(
        self,
        total_amount: Decimal | int | str,
        duration_minutes: int | float,
        wallet_count: int = DEFAULT_WALLET_COUNT,
    ) -> FundingPlan:
        total = _parse_amount(total_amount)
        if total <= 0:
            raise ConfigurationError("Total amount must be positive")
        if isinstance(duration_minutes, bool) or duration_minutes < 1:
            raise ConfigurationError("Duration must be at least 1 minute")
        if isinstance(wallet_count, bool) or wallet_count < 1:
            raise ConfigurationError("Wallet count must be at least 1")
        if total < self._quantum * wallet_count:
            raise ConfigurationError(
                f"Total amount {total} is too small to split across {wallet_count} wallets"
            )

        amounts = self._split(total, wallet_count)
        delays = self._delays(wallet_count, int(duration_minutes * 60 * 1000))
        LOGGER.info(
            "Planned %s sends totalling %s over %s minutes",
            wallet_count,
            total,
            duration_minutes,
        )
        return FundingPlan(
            total_amount=total, amounts=tuple(amounts), delays_ms=tuple(delays)
        )

    def generate_wallets(self, count: int) -> tuple[list[Keypair], list[Keypair]]:
        """Fresh destination and intermediate keypairs, ``count`` of each."""
        if count < 1:
            raise ConfigurationError("Wallet count must be at least 1")
        destinations = [Keypair() for _ in range(count)]
        intermediates = [Keypair() for _ in range(count)]
        LOGGER.info(
            "Generated %s trading wallets and %s intermediate wallets", count, count
        )
        return destinations, intermediates

    def _split(self, total: Decimal, count: int) -> list[Decimal]:
        share = total / count
        amounts = [self._jittered(share) for _ in range(count - 1)]
        residual = total - sum(amounts, Decimal("0"))
        if residual <= 0:
            # Jitter overshot the total; redraw so the draws average to the share.
            amounts = self._recentred(share, count)
            residual = total - sum(amounts, Decimal("0"))
        amounts.append(residual)
        return amounts

    def _jittered(self, share: Decimal) -> Decimal:
        factor = Decimal(str(self._rng.uniform(JITTER_LOW, JITTER_HIGH)))
        return (share * factor).quantize(self._quantum, rounding=ROUND_DOWN)

    def _recentred(self, share: Decimal, count: int) -> list[Decimal]:
        amounts: list[Decimal] = []
        for _ in range((count - 1) // 2):
            offset = share * Decimal(str(self._rng.uniform(0.0, JITTER_HIGH - 1)))
            amounts.append((share + offset).quantize(self._quantum, rounding=ROUND_DOWN))
            amounts.append((share - offset).quantize(self._quantum, rounding=ROUND_DOWN))
        if (count - 1) % 2:
            amounts.append(share.quantize(self._quantum, rounding=ROUND_DOWN))
        return amounts

    def _delays(self, count: int, window_ms: int) -> list[int]:
        delays: list[int] = []
        elapsed = 0
        for _ in range(count):
            delay = int(self._rng.uniform(self.min_delay_sec, self.max_delay_sec) * 1000)
            delay = min(delay, window_ms - elapsed)
            delays.append(delay)
            elapsed += delay
        return delays


def _parse_amount(value: Decimal | int | str) -> Decimal:
    if isinstance(value, bool):
        raise ConfigurationError("Total amount must be a number")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ConfigurationError("Total amount must be a number") from exc
    if not amount.is_finite():
        raise ConfigurationError("Total amount must be finite")
    return amount
