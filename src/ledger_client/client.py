"""Solana ledger client built on the async JSON-RPC transport."""

from __future__ import annotations

import asyncio
import base64
import logging
import time
from decimal import ROUND_DOWN, Decimal
from typing import Awaitable, Callable

from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer
from solders.transaction import Transaction

from engine.errors import NetworkError
from ledger_client.constants import (
    CONFIRMED_STATUSES,
    DEFAULT_COMMITMENT,
    LAMPORTS_PER_SOL,
)
from ledger_client.models import AccountInfo, SignatureStatus, TokenAmount
from ledger_client.rpc import AsyncRpcClient, RpcResponseError

LOGGER = logging.getLogger("amm_fleet.ledger.client")


def sol_to_lamports(amount: Decimal) -> int:
    lamports = (Decimal(str(amount)) * LAMPORTS_PER_SOL).to_integral_value(
        rounding=ROUND_DOWN
    )
    return int(lamports)


def lamports_to_sol(lamports: int) -> Decimal:
    return Decimal(lamports) / LAMPORTS_PER_SOL


class SolanaLedgerClient:
    """Implements the ledger interface over ``AsyncRpcClient``."""

    def __init__(
        self,
        rpc: AsyncRpcClient,
        *,
        commitment: str = DEFAULT_COMMITMENT,
        confirm_timeout_sec: float = 60.0,
        poll_interval_sec: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        time_provider: Callable[[], float] = time.monotonic,
    ) -> None:
        self.rpc = rpc
        self.commitment = commitment
        self.confirm_timeout_sec = confirm_timeout_sec
        self.poll_interval_sec = poll_interval_sec
        self._sleep = sleep
        self._time_provider = time_provider

    async def request_faucet_grant(self, pubkey: str, amount: Decimal) -> str:
        lamports = sol_to_lamports(amount)
        if lamports <= 0:
            raise ValueError(f"Faucet grant must be positive, got {amount}")
        signature = await self.rpc.call("requestAirdrop", [pubkey, lamports])
        LOGGER.info("Requested faucet grant of %s SOL to %s", amount, pubkey)
        return str(signature)

    async def transfer(
        self, from_keypair: Keypair, to_pubkey: str, amount: Decimal
    ) -> str:
        lamports = sol_to_lamports(amount)
        if lamports <= 0:
            raise ValueError(f"Transfer amount must be positive, got {amount}")
        blockhash = await self._latest_blockhash()
        instruction = transfer(
            TransferParams(
                from_pubkey=from_keypair.pubkey(),
                to_pubkey=Pubkey.from_string(to_pubkey),
                lamports=lamports,
            )
        )
        message = Message([instruction], from_keypair.pubkey())
        transaction = Transaction([from_keypair], message, blockhash)
        encoded = base64.b64encode(bytes(transaction)).decode("ascii")
        signature = await self.rpc.call(
            "sendTransaction",
            [
                encoded,
                {"encoding": "base64", "preflightCommitment": self.commitment},
            ],
        )
        LOGGER.info(
            "Sent %s SOL from %s to %s (signature=%s)",
            amount,
            from_keypair.pubkey(),
            to_pubkey,
            signature,
        )
        return str(signature)

    async def confirm_transaction(self, signature: str) -> bool:
        deadline = self._time_provider() + self.confirm_timeout_sec
        while True:
            result = await self.rpc.call(
                "getSignatureStatuses",
                [[signature], {"searchTransactionHistory": True}],
            )
            values = (result or {}).get("value") or [None]
            raw_status = values[0]
            if raw_status is not None:
                status = SignatureStatus.model_validate(raw_status)
                if status.err is not None:
                    raise NetworkError(
                        f"Transaction {signature} failed: {status.err}"
                    )
                if status.confirmation_status in CONFIRMED_STATUSES:
                    return True
            if self._time_provider() >= deadline:
                raise NetworkError(
                    f"Transaction {signature} not confirmed within "
                    f"{self.confirm_timeout_sec}s"
                )
            await self._sleep(self.poll_interval_sec)

    async def get_token_account_balance(self, vault_address: str) -> TokenAmount | None:
        try:
            result = await self.rpc.call(
                "getTokenAccountBalance",
                [vault_address, {"commitment": self.commitment}],
            )
        except RpcResponseError as exc:
            LOGGER.debug("No token balance for %s: %s", vault_address, exc)
            return None
        value = (result or {}).get("value")
        if value is None:
            return None
        return TokenAmount.model_validate(value)

    async def get_account_info(self, address: str) -> AccountInfo | None:
        result = await self.rpc.call(
            "getAccountInfo",
            [address, {"encoding": "base64", "commitment": self.commitment}],
        )
        value = (result or {}).get("value")
        if value is None:
            return None
        return AccountInfo.model_validate(value)

    async def close(self) -> None:
        await self.rpc.close()

    async def _latest_blockhash(self) -> Hash:
        result = await self.rpc.call(
            "getLatestBlockhash", [{"commitment": self.commitment}]
        )
        try:
            return Hash.from_string(result["value"]["blockhash"])
        except (KeyError, TypeError, ValueError) as exc:
            raise NetworkError(f"Malformed getLatestBlockhash result: {result}") from exc


def build_ledger_client(
    rpc_endpoint: str,
    *,
    timeout: float = 15.0,
    max_retries: int = 3,
    rate_limiter=None,
) -> SolanaLedgerClient:
    rpc = AsyncRpcClient(
        rpc_endpoint,
        timeout=timeout,
        max_retries=max_retries,
        rate_limiter=rate_limiter,
    )
    return SolanaLedgerClient(rpc)
