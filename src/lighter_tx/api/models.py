"""Response contracts for the REST endpoints used by the transaction core."""

from decimal import Decimal
from enum import Enum
from typing import Any, Optional, TypeVar, Union

from pydantic import AliasChoices, BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from lighter_tx.exceptions import ApiError

ModelT = TypeVar("ModelT", bound=BaseModel)


def parse_response(model: type[ModelT], payload: Any, endpoint: str) -> ModelT:
    """Validate a response payload, reporting schema mismatches as ApiError."""
    try:
        return model.model_validate(payload)
    except PydanticValidationError as e:
        error = e.errors()[0]
        field = ".".join(str(part) for part in error["loc"]) or "body"
        raise ApiError(f"Malformed {endpoint} response ({field}): {error['msg']}") from e


class NextNonce(BaseModel):
    """Response of ``GET /api/v1/nextNonce``."""

    account_index: Optional[int] = Field(None, description="Account index")
    api_key_index: Optional[int] = Field(None, description="API key index")
    nonce: int = Field(..., description="Next usable nonce")


class TxHash(BaseModel):
    """Response of ``POST /api/v1/sendTx``."""

    code: Optional[int] = Field(None, description="Venue result code")
    message: Optional[str] = Field(None, description="Venue result message")
    hash: str = Field(
        default="",
        validation_alias=AliasChoices("tx_hash", "hash"),
        description="Transaction hash",
    )


class TxHashes(BaseModel):
    """Response of ``POST /api/v1/sendTxBatch``."""

    code: Optional[int] = Field(None, description="Venue result code")
    message: Optional[str] = Field(None, description="Venue result message")
    hashes: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("tx_hash", "hashes"),
        description="Transaction hashes in submission order",
    )


class TxStatus(str, Enum):
    """Server-observed transaction status."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not TxStatus.PENDING


class TransactionRecord(BaseModel):
    """Response of ``GET /api/v1/tx``.

    Any status the client does not recognise is treated as pending.
    """

    hash: str = Field(..., description="Transaction hash")
    status: TxStatus = Field(default=TxStatus.PENDING, description="pending, confirmed, failed")
    block_height: Optional[int] = Field(None, description="Block height once included")
    type: Optional[Union[int, str]] = Field(None, description="Transaction type")
    created_at: Optional[Any] = Field(None, description="Creation timestamp")
    updated_at: Optional[Any] = Field(None, description="Last update timestamp")

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value: Any) -> str:
        text = str(value).lower() if value is not None else ""
        if text in {s.value for s in TxStatus}:
            return text
        return TxStatus.PENDING.value


class AccountPosition(BaseModel):
    """An open position as reported in the account snapshot."""

    market_id: int = Field(..., description="Market index")
    size: Decimal = Field(
        default=Decimal("0"),
        validation_alias=AliasChoices("size", "position"),
        description="Position size in base units",
    )
    side: Optional[str] = Field(None, description="long or short")
    sign: Optional[int] = Field(None, description="1 for long, -1 for short")
    mark_price: Optional[Decimal] = Field(None, description="Reference price for closing")

    @property
    def is_open(self) -> bool:
        return self.size != 0

    @property
    def is_long(self) -> bool:
        if self.side:
            return self.side.lower() == "long"
        if self.sign is not None:
            return self.sign > 0
        return self.size > 0


class Account(BaseModel):
    """Account snapshot from ``GET /api/v1/account``."""

    index: Optional[int] = Field(None, validation_alias=AliasChoices("index", "account_index"))
    l1_address: Optional[str] = Field(None, description="L1 address")
    available_balance: Optional[Decimal] = Field(None, description="Available balance")
    collateral: Optional[Decimal] = Field(None, description="Collateral")
    positions: list[AccountPosition] = Field(default_factory=list, description="Open positions")

    @property
    def open_positions(self) -> list[AccountPosition]:
        return [p for p in self.positions if p.is_open]
