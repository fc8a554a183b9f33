import random
from decimal import Decimal

import pytest
from solders.keypair import Keypair

from amm.pool_state import AmmPoolState, PoolState
from strategies import (
    DESCRIPTIONS,
    STRATEGIES,
    StrategyContext,
    build_strategy,
    execute_simulated_swap,
    heartbeat_strategy,
)
from strategies.price_band import PriceBandConfig, PriceBandStrategy
from strategies.random_swap import RandomSwapConfig, RandomSwapStrategy
from utils.config_validator import ConfigurationError

TOKEN = "4k3Dyjzvzp8eMZWUXbBCjEvwSkkk59S5iCNLY3QrkX6R"


def _context(seed=1, **kwargs):
    pool = PoolState(
        token_address=TOKEN,
        token_decimals=6,
        reserve_sol=Decimal("10"),
        reserve_token=Decimal("1000"),
    )
    return StrategyContext(
        pool_state=AmmPoolState(pool), rng=random.Random(seed), **kwargs
    )


def test_registry_is_closed_and_described():
    assert set(STRATEGIES) == {"heartbeat", "random_swap", "price_band"}
    assert set(DESCRIPTIONS) == set(STRATEGIES)
    for describe in DESCRIPTIONS.values():
        assert describe()


def test_build_strategy_rejects_unknown_name():
    with pytest.raises(ConfigurationError, match="Unknown strategy"):
        build_strategy("print('hi')")


@pytest.mark.parametrize(
    ("name", "params"),
    [
        ("random_swap", {"min_sol": "0.5", "max_sol": "0.1"}),
        ("random_swap", {"unknown": 1}),
        ("random_swap", {"min_sol": "abc"}),
        ("price_band", {"band_percent": "0"}),
        ("heartbeat", {"anything": 1}),
    ],
)
def test_build_strategy_rejects_invalid_params(name, params):
    with pytest.raises(ConfigurationError):
        build_strategy(name, params)


def test_build_strategy_returns_fresh_instances():
    first = build_strategy("price_band", {"band_percent": "2"})
    second = build_strategy("price_band", {"band_percent": "2"})

    assert isinstance(first, PriceBandStrategy)
    assert first is not second
    assert first.config.band_percent == Decimal("2")
    assert build_strategy("heartbeat") is heartbeat_strategy


def test_heartbeat_only_logs():
    logs = []
    context = _context()

    heartbeat_strategy(Keypair(), logs.append, context)

    assert logs == ["executing default strategy"]
    assert len(context.pool_state.get_pool().candles) == 1


def test_simulated_buy_moves_pool():
    context = _context()
    logs = []

    swap = execute_simulated_swap(context, "buy", Decimal("1"), logs.append)

    pool = context.pool_state.get_pool()
    assert pool.reserve_sol == Decimal("11")
    assert pool.reserve_token == Decimal("1000") - swap.estimated_output
    assert pool.price > Decimal("0.01")
    assert logs[0].startswith("Bought")


def test_simulated_sell_moves_pool():
    context = _context()
    logs = []

    swap = execute_simulated_swap(context, "sell", Decimal("100"), logs.append)

    pool = context.pool_state.get_pool()
    assert pool.reserve_token == Decimal("1100")
    assert pool.reserve_sol == Decimal("10") - swap.estimated_output
    assert pool.price < Decimal("0.01")


def test_simulated_swap_without_pool_skips():
    logs = []

    assert execute_simulated_swap(None, "buy", Decimal("1"), logs.append) is None
    assert execute_simulated_swap(
        StrategyContext(pool_state=AmmPoolState()), "buy", Decimal("1"), logs.append
    ) is None
    assert all("skipping" in line for line in logs)


def test_random_swap_trades_within_bounds():
    strategy = RandomSwapStrategy(
        RandomSwapConfig(min_sol=Decimal("0.01"), max_sol=Decimal("0.05"))
    )
    context = _context(seed=5)
    logs = []

    for _ in range(20):
        strategy(Keypair(), logs.append, context)

    pool = context.pool_state.get_pool()
    assert len(pool.candles) == 21
    assert Decimal("0") < pool.volume <= Decimal("0.05") * 20
    assert len(logs) == 20


def test_random_swap_always_buys_with_probability_one():
    strategy = RandomSwapStrategy(RandomSwapConfig(buy_probability=Decimal("1")))
    context = _context()
    logs = []

    for _ in range(5):
        strategy(Keypair(), logs.append, context)

    assert all(line.startswith("Bought") for line in logs)
    assert context.pool_state.price > Decimal("0.01")


def test_price_band_sets_reference_then_trades_outside_band():
    strategy = PriceBandStrategy(
        PriceBandConfig(band_percent=Decimal("5"), trade_sol=Decimal("0.1"))
    )
    context = _context()
    logs = []

    strategy(Keypair(), logs.append, context)
    assert strategy.reference_price == Decimal("0.01")

    strategy(Keypair(), logs.append, context)
    assert "inside band" in logs[-1]

    # Push the price well above the upper band.
    context.pool_state.update_after_trade(Decimal("-200"), Decimal("2"))
    strategy(Keypair(), logs.append, context)
    assert logs[-1].startswith("Sold")

    # And well below the lower band.
    context.pool_state.update_after_trade(Decimal("600"), Decimal("-3"))
    strategy(Keypair(), logs.append, context)
    assert logs[-1].startswith("Bought")


def test_price_band_without_pool_holds():
    strategy = PriceBandStrategy(PriceBandConfig())
    logs = []

    strategy(Keypair(), logs.append, StrategyContext())

    assert strategy.reference_price is None
    assert logs == ["No pool available; skipping trade"]
