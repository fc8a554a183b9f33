"""In-memory constant-product pool simulator with OHLC candle history."""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from decimal import Decimal, localcontext

from amm.reserves import PoolReserves, to_ui_amount
from engine.clock import Clock, SystemClock
from engine.errors import PoolNotInitializedError
from engine.ledger_client import LedgerClient
from ledger_client.constants import SOL_DECIMALS
from utils.config_validator import ConfigurationError

LOGGER = logging.getLogger("amm_fleet.amm.pool_state")

CANDLE_CAPACITY = 100
PRICE_PRECISION = 50


@dataclass(frozen=True)
class Candle:
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    timestamp: int


@dataclass
class PoolState:
    token_address: str
    token_decimals: int
    reserve_sol: Decimal
    reserve_token: Decimal
    volume: Decimal = Decimal("0")
    candles: deque[Candle] = field(
        default_factory=lambda: deque(maxlen=CANDLE_CAPACITY)
    )
    pool_id: str | None = None
    price: Decimal = field(init=False)

    def __post_init__(self) -> None:
        self.reserve_sol = Decimal(str(self.reserve_sol))
        self.reserve_token = Decimal(str(self.reserve_token))
        self.volume = Decimal(str(self.volume))
        # Accepts any iterable of candles; stored bounded.
        self.candles = deque(self.candles, maxlen=CANDLE_CAPACITY)
        self.price = _price_from_reserves(self.reserve_sol, self.reserve_token)

    def reserves(self) -> PoolReserves:
        return PoolReserves(
            reserve_sol=self.reserve_sol,
            reserve_token=self.reserve_token,
            token_decimals=self.token_decimals,
        )


class AmmPoolState:
    """Owns one pool's reserves, price, volume and candles.

    Mutations are serialized with a lock. Strategies read through ``reserves``
    and ``price`` and change the pool only via ``update_after_trade``.
    """

    def __init__(
        self, pool: PoolState | None = None, *, clock: Clock | None = None
    ) -> None:
        self._clock = clock or SystemClock()
        self._lock = threading.Lock()
        self._pool: PoolState | None = None
        if pool is not None:
            self.set_pool(pool)

    def get_pool(self) -> PoolState | None:
        return self._pool

    @property
    def price(self) -> Decimal | None:
        return self._pool.price if self._pool is not None else None

    def reserves(self) -> PoolReserves | None:
        return self._pool.reserves() if self._pool is not None else None

    def set_pool(self, pool: PoolState | None) -> None:
        with self._lock:
            if pool is None:
                LOGGER.info("Clearing simulated pool.")
                self._pool = None
                return
            pool.token_address = pool.token_address.lower()
            pool.price = _price_from_reserves(pool.reserve_sol, pool.reserve_token)
            if not pool.candles:
                pool.candles.append(self._flat_candle(pool.price))
            self._pool = pool
            LOGGER.info(
                "Set simulated pool for %s (pool_id=%s, price=%s)",
                pool.token_address,
                pool.pool_id,
                pool.price,
            )

    def clear(self) -> None:
        self.set_pool(None)

    def dispose(self) -> None:
        self.clear()

    def update_after_trade(
        self, token_delta: Decimal | int | str, sol_delta: Decimal | int | str
    ) -> Candle:
        """Apply a trade's reserve deltas and record a candle for it."""
        with self._lock:
            pool = self._require_pool()
            token_delta = Decimal(str(token_delta))
            sol_delta = Decimal(str(sol_delta))
            prev_price = pool.price

            pool.reserve_token += token_delta
            pool.reserve_sol += sol_delta
            pool.volume += abs(sol_delta)
            self._clamp_reserves(pool)

            new_price = _price_from_reserves(pool.reserve_sol, pool.reserve_token)
            if new_price < 0 or not new_price.is_finite():
                LOGGER.error(
                    "Invalid price %s (sol=%s, token=%s); keeping previous price.",
                    new_price,
                    pool.reserve_sol,
                    pool.reserve_token,
                )
                new_price = prev_price if prev_price > 0 else Decimal("0")
            pool.price = new_price

            candle = Candle(
                open=prev_price,
                high=max(prev_price, new_price),
                low=min(prev_price, new_price),
                close=new_price,
                timestamp=self._clock.now_ms(),
            )
            pool.candles.append(candle)
            LOGGER.debug(
                "Updated pool after trade: token_delta=%s sol_delta=%s price=%s",
                token_delta,
                sol_delta,
                new_price,
            )
            return candle

    def create_pool(
        self,
        token_address: str,
        token_decimals: int,
        token_amount_raw: int,
        sol_lamports: int,
        *,
        pool_id: str | None = None,
    ) -> PoolState:
        """Create a simulated pool from raw smallest-unit deposits."""
        reserve_token = to_ui_amount(token_amount_raw, token_decimals)
        reserve_sol = to_ui_amount(sol_lamports, SOL_DECIMALS)
        if reserve_token <= 0:
            raise ConfigurationError("Token amount must be positive to price a pool.")
        if reserve_sol <= 0:
            raise ConfigurationError("SOL amount must be positive to price a pool.")
        pool = PoolState(
            token_address=token_address,
            token_decimals=token_decimals,
            reserve_sol=reserve_sol,
            reserve_token=reserve_token,
            pool_id=pool_id,
        )
        self.set_pool(pool)
        return pool

    def add_liquidity(self, token_amount_raw: int, sol_lamports: int) -> Candle:
        """Deposit both assets; the SOL side counts toward volume."""
        with self._lock:
            pool = self._require_pool()
            token_added = to_ui_amount(token_amount_raw, pool.token_decimals)
            sol_added = to_ui_amount(sol_lamports, SOL_DECIMALS)
            if token_added < 0 or sol_added < 0:
                raise ConfigurationError("Liquidity amounts must be non-negative.")
            prev_price = pool.price
            pool.reserve_token += token_added
            pool.reserve_sol += sol_added
            pool.volume += sol_added
            if pool.reserve_token > 0:
                pool.price = _price_from_reserves(pool.reserve_sol, pool.reserve_token)
            candle = Candle(
                open=prev_price,
                high=max(prev_price, pool.price),
                low=min(prev_price, pool.price),
                close=pool.price,
                timestamp=self._clock.now_ms(),
            )
            pool.candles.append(candle)
            LOGGER.info(
                "Added liquidity: %s tokens, %s SOL (price=%s)",
                token_added,
                sol_added,
                pool.price,
            )
            return candle

    def does_pool_exist_for_token(self, token_address: str | None) -> bool:
        pool = self._pool
        if pool is None or not token_address or not pool.token_address:
            return False
        return pool.token_address == token_address.lower()

    def is_live_pool(self) -> bool:
        return self._pool is not None and bool(self._pool.pool_id)

    def _require_pool(self) -> PoolState:
        if self._pool is None:
            LOGGER.error("Cannot update: pool not initialized.")
            raise PoolNotInitializedError("Pool not initialized")
        return self._pool

    def _clamp_reserves(self, pool: PoolState) -> None:
        if pool.reserve_token <= 0:
            LOGGER.warning(
                "Simulated token reserve reached zero or below; clamping to one unit."
            )
            pool.reserve_token = Decimal(1).scaleb(-pool.token_decimals)
        if pool.reserve_sol <= 0:
            LOGGER.warning(
                "Simulated SOL reserve reached zero or below; clamping to one lamport."
            )
            pool.reserve_sol = Decimal(1).scaleb(-SOL_DECIMALS)

    def _flat_candle(self, price: Decimal) -> Candle:
        return Candle(
            open=price, high=price, low=price, close=price, timestamp=self._clock.now_ms()
        )


async def seed_pool_from_vaults(
    ledger: LedgerClient,
    token_address: str,
    token_decimals: int,
    sol_vault: str,
    token_vault: str,
    *,
    pool_id: str | None = None,
) -> PoolState | None:
    """Build a pool mirror from live vault balances, or None if a vault is missing."""
    sol_balance = await ledger.get_token_account_balance(sol_vault)
    token_balance = await ledger.get_token_account_balance(token_vault)
    if sol_balance is None or token_balance is None:
        LOGGER.info(
            "Pool vaults not found for %s; pool may not exist.", token_address
        )
        return None
    return PoolState(
        token_address=token_address,
        token_decimals=token_decimals,
        reserve_sol=to_ui_amount(sol_balance.amount, sol_balance.decimals),
        reserve_token=to_ui_amount(token_balance.amount, token_decimals),
        pool_id=pool_id,
    )


def _price_from_reserves(reserve_sol: Decimal, reserve_token: Decimal) -> Decimal:
    if reserve_token == 0:
        return Decimal("0")
    with localcontext() as ctx:
        ctx.prec = PRICE_PRECISION
        return reserve_sol / reserve_token
