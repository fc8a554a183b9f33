"""Ledger constants for the Solana networks the fleet runs against."""

from decimal import Decimal

SOL_DECIMALS = 9
LAMPORTS_PER_SOL = 10**SOL_DECIMALS
NATIVE_MINT = "So11111111111111111111111111111111111111112"

DEFAULT_RPC_ENDPOINTS = {
    "devnet": "https://api.devnet.solana.com",
    "mainnet-beta": "https://api.mainnet-beta.solana.com",
}
FAUCET_NETWORKS = frozenset({"devnet"})

DEFAULT_COMMITMENT = "confirmed"
CONFIRMED_STATUSES = frozenset({"confirmed", "finalized"})

# Signature fee plus headroom for a single native transfer.
TRANSFER_FEE_RESERVE = Decimal("0.00001")
