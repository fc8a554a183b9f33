"""Constant-product swap quotes with fee, slippage and price impact.

All arithmetic runs in a local 50-digit decimal context; the same inputs always
produce the same quote.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_FLOOR, Decimal, localcontext

from amm.reserves import PoolReserves

DEFAULT_FEE_BPS = 25
QUOTE_PRECISION = 50

_ZERO = Decimal("0")
_ONE = Decimal("1")
_HUNDRED = Decimal("100")
_BPS = Decimal("10000")


@dataclass(frozen=True)
class SwapQuote:
    estimated_output: Decimal
    price_impact_percent: Decimal
    min_amount_out: int
    execution_price: Decimal

    @classmethod
    def degenerate(cls) -> "SwapQuote":
        """Zero-output quote for a pool that cannot satisfy the trade."""
        return cls(
            estimated_output=_ZERO,
            price_impact_percent=_HUNDRED,
            min_amount_out=0,
            execution_price=_ZERO,
        )

    @property
    def is_degenerate(self) -> bool:
        return self.estimated_output <= 0


def quote(
    input_amount: Decimal | int | str,
    is_input_first_asset: bool,
    reserves: PoolReserves | None,
    fee_bps: Decimal | int | str = DEFAULT_FEE_BPS,
    slippage_percent: Decimal | int | str = Decimal("1"),
) -> SwapQuote | None:
    """Quote swapping ``input_amount`` of one pool asset for the other.

    The first asset is SOL. Returns None for a non-positive input, missing
    reserves or negative reserves; a zero-output quote with 100% impact when the
    pool cannot fill the trade.
    """
    if reserves is None:
        return None
    with localcontext() as ctx:
        ctx.prec = QUOTE_PRECISION
        amount_in = _to_decimal(input_amount)
        if amount_in <= 0:
            return None
        if reserves.reserve_sol < 0 or reserves.reserve_token < 0:
            return None

        if is_input_first_asset:
            reserve_in, reserve_out = reserves.reserve_sol, reserves.reserve_token
            output_decimals = reserves.token_decimals
        else:
            reserve_in, reserve_out = reserves.reserve_token, reserves.reserve_sol
            output_decimals = reserves.sol_decimals

        if reserve_in == 0 or reserve_out == 0:
            return SwapQuote.degenerate()

        fee = _to_decimal(fee_bps) / _BPS
        amount_in_with_fee = amount_in * (_ONE - fee)

        k = reserve_in * reserve_out
        new_reserve_out = k / (reserve_in + amount_in_with_fee)
        estimated_output = reserve_out - new_reserve_out
        if estimated_output >= reserve_out:
            # Huge inputs round the remainder away; leave one smallest unit behind.
            estimated_output = reserve_out - Decimal(1).scaleb(-output_decimals)
        if estimated_output <= 0:
            return SwapQuote.degenerate()

        market_price = reserve_out / reserve_in
        # Execution price uses the gross input, so the fee shows up as impact.
        execution_price = estimated_output / amount_in
        if market_price.is_finite() and market_price > 0:
            price_impact = abs(market_price - execution_price) / market_price * _HUNDRED
        else:
            price_impact = _HUNDRED

        slippage = _to_decimal(slippage_percent) / _HUNDRED
        min_output = estimated_output * (_ONE - slippage)
        if min_output < 0:
            min_output = _ZERO
        min_amount_out = int(
            (min_output * (Decimal(10) ** output_decimals)).to_integral_value(
                rounding=ROUND_FLOOR
            )
        )

        return SwapQuote(
            estimated_output=estimated_output,
            price_impact_percent=price_impact,
            min_amount_out=min_amount_out,
            execution_price=execution_price,
        )


def _to_decimal(value: Decimal | int | str) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))
