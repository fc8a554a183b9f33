"""Ledger client interface consumed by the funding worker and pool seeding."""

from __future__ import annotations

from decimal import Decimal
from typing import Protocol

from solders.keypair import Keypair

from ledger_client.models import AccountInfo, TokenAmount


class LedgerClient(Protocol):
    async def request_faucet_grant(self, pubkey: str, amount: Decimal) -> str:
        """Request a test-network grant of ``amount`` SOL; return the signature."""

    async def transfer(
        self, from_keypair: Keypair, to_pubkey: str, amount: Decimal
    ) -> str:
        """Send ``amount`` SOL and return the transaction signature."""

    async def confirm_transaction(self, signature: str) -> bool:
        """Wait for the signature to reach the client's commitment level."""

    async def get_token_account_balance(self, vault_address: str) -> TokenAmount | None:
        """Return the token balance of a vault, or None if it does not exist."""

    async def get_account_info(self, address: str) -> AccountInfo | None:
        """Return account info, or None if the account does not exist."""

    async def close(self) -> None:
        """Release network resources."""
