"""Pydantic models for ledger JSON-RPC results."""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ledger_client.constants import LAMPORTS_PER_SOL


class TokenAmount(BaseModel):
    """Result of ``getTokenAccountBalance``."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    amount: str
    decimals: int
    ui_amount_string: str | None = Field(default=None, alias="uiAmountString")

    @field_validator("amount", mode="before")
    @classmethod
    def validate_amount(cls, v: Any) -> str:
        """Raw amounts are non-negative integers in the token's smallest unit."""
        text = str(v)
        if not text.isdigit():
            raise ValueError(f"Invalid raw token amount: {v}")
        return text

    @property
    def raw(self) -> int:
        return int(self.amount)

    @property
    def ui_amount(self) -> Decimal:
        return Decimal(self.amount).scaleb(-self.decimals)


class AccountInfo(BaseModel):
    """Result of ``getAccountInfo`` for an existing account."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    lamports: int
    owner: str
    executable: bool = False
    rent_epoch: int | None = Field(default=None, alias="rentEpoch")
    data: Any = None

    @property
    def balance(self) -> Decimal:
        return Decimal(self.lamports) / LAMPORTS_PER_SOL


class SignatureStatus(BaseModel):
    """One entry of ``getSignatureStatuses``."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    slot: int
    confirmations: int | None = None
    err: Any = None
    confirmation_status: str | None = Field(default=None, alias="confirmationStatus")
