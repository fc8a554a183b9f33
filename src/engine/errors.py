"""Error taxonomy shared by the fleet scheduler, funding worker and ledger client."""

from __future__ import annotations


class NetworkError(Exception):
    """Raised when an RPC call, transfer or confirmation fails."""


class StrategyError(Exception):
    """Wraps an exception raised by a strategy tick; only ever logged."""

    def __init__(self, bot_id: str, cause: BaseException) -> None:
        super().__init__(f"Strategy failed for {bot_id}: {cause}")
        self.bot_id = bot_id
        self.cause = cause


class FundingError(Exception):
    """Raised when one wallet's faucet grant or forward transfer fails."""

    def __init__(self, wallet: str, stage: str, message: str) -> None:
        super().__init__(f"{stage} failed for {wallet}: {message}")
        self.wallet = wallet
        self.stage = stage


class PoolNotInitializedError(RuntimeError):
    """Raised when a trade is applied before any pool is set."""
