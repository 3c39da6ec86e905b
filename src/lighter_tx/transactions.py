"""Transaction value objects.

Each transaction kind is a frozen pydantic model whose field order is the
canonical wire order. Field names map to the venue's PascalCase keys through
serialization aliases. The signature covers ``canonical_bytes()``: compact
JSON of the unsigned fields, booleans as 0/1, amounts and prices as integers.
"""

import json
from dataclasses import dataclass
from typing import Any, ClassVar, Optional

from pydantic import BaseModel, ConfigDict, Field

from lighter_tx.constants import DEFAULT_28_DAY_ORDER_EXPIRY, NIL_TRIGGER_PRICE, TxType


def _dumps(data: dict) -> str:
    return json.dumps(data, separators=(",", ":"), ensure_ascii=True)


class TxInfo(BaseModel):
    """Base class for all transaction kinds."""

    model_config = ConfigDict(frozen=True)

    tx_type: ClassVar[TxType]
    # Fields added after signing, excluded from the signed bytes
    post_sign_fields: ClassVar[frozenset[str]] = frozenset()

    account_index: int = Field(..., serialization_alias="AccountIndex")
    api_key_index: int = Field(..., serialization_alias="ApiKeyIndex")

    signature: Optional[str] = Field(default=None, exclude=True)

    def unsigned_payload(self) -> dict[str, Any]:
        """Canonical field-ordered mapping covered by the signature."""
        return self.model_dump(
            by_alias=True, exclude_none=True, exclude=set(self.post_sign_fields)
        )

    def canonical_bytes(self) -> bytes:
        return _dumps(self.unsigned_payload()).encode("utf-8")

    def payload(self) -> dict[str, Any]:
        """Full payload including signature fields when present."""
        data = self.model_dump(by_alias=True, exclude_none=True)
        if self.signature is not None:
            data["Sig"] = self.signature
        return data

    def to_json(self) -> str:
        return _dumps(self.payload())

    def with_signature(self, signature: str) -> "TxInfo":
        return self.model_copy(update={"signature": signature})

    @property
    def is_signed(self) -> bool:
        return self.signature is not None


class CreateOrderTx(TxInfo):
    tx_type: ClassVar[TxType] = TxType.CREATE_ORDER

    market_index: int = Field(..., serialization_alias="MarketIndex")
    client_order_index: int = Field(..., serialization_alias="ClientOrderIndex")
    base_amount: int = Field(..., serialization_alias="BaseAmount")
    price: int = Field(..., serialization_alias="Price")
    is_ask: int = Field(..., ge=0, le=1, serialization_alias="IsAsk")
    order_type: int = Field(..., serialization_alias="Type")
    time_in_force: int = Field(..., serialization_alias="TimeInForce")
    reduce_only: int = Field(..., ge=0, le=1, serialization_alias="ReduceOnly")
    trigger_price: int = Field(NIL_TRIGGER_PRICE, serialization_alias="TriggerPrice")
    nonce: int = Field(..., serialization_alias="Nonce")
    # Omitted for the default 28-day expiry
    order_expiry: Optional[int] = Field(None, serialization_alias="OrderExpiry")
    expired_at: Optional[int] = Field(None, serialization_alias="ExpiredAt")

    @property
    def effective_expiry(self) -> int:
        """Expiry value handed to the signer (-1 means the default)."""
        if self.order_expiry is None:
            return DEFAULT_28_DAY_ORDER_EXPIRY
        return self.order_expiry


class CancelOrderTx(TxInfo):
    tx_type: ClassVar[TxType] = TxType.CANCEL_ORDER

    market_index: int = Field(..., serialization_alias="MarketIndex")
    order_index: int = Field(..., serialization_alias="OrderIndex")
    nonce: int = Field(..., serialization_alias="Nonce")


class CancelAllOrdersTx(TxInfo):
    tx_type: ClassVar[TxType] = TxType.CANCEL_ALL_ORDERS

    time_in_force: int = Field(..., serialization_alias="TimeInForce")
    time: int = Field(..., serialization_alias="Time")
    nonce: int = Field(..., serialization_alias="Nonce")


class TransferTx(TxInfo):
    tx_type: ClassVar[TxType] = TxType.TRANSFER

    to_account_index: int = Field(..., serialization_alias="ToAccountIndex")
    usdc_amount: int = Field(..., ge=0, serialization_alias="USDCAmount")
    fee: int = Field(0, ge=0, serialization_alias="Fee")
    memo: str = Field(..., serialization_alias="Memo")
    nonce: int = Field(..., serialization_alias="Nonce")


class UpdateLeverageTx(TxInfo):
    tx_type: ClassVar[TxType] = TxType.UPDATE_LEVERAGE

    market_index: int = Field(..., serialization_alias="MarketIndex")
    initial_margin_fraction: int = Field(..., gt=0, serialization_alias="InitialMarginFraction")
    margin_mode: int = Field(..., serialization_alias="MarginMode")
    nonce: int = Field(..., serialization_alias="Nonce")


class WithdrawTx(TxInfo):
    tx_type: ClassVar[TxType] = TxType.WITHDRAW

    usdc_amount: int = Field(..., gt=0, serialization_alias="USDCAmount")
    nonce: int = Field(..., serialization_alias="Nonce")


class CreateSubAccountTx(TxInfo):
    tx_type: ClassVar[TxType] = TxType.CREATE_SUB_ACCOUNT

    nonce: int = Field(..., serialization_alias="Nonce")


class ModifyOrderTx(TxInfo):
    tx_type: ClassVar[TxType] = TxType.MODIFY_ORDER

    market_index: int = Field(..., serialization_alias="MarketIndex")
    order_index: int = Field(..., serialization_alias="OrderIndex")
    base_amount: int = Field(..., serialization_alias="BaseAmount")
    price: int = Field(..., serialization_alias="Price")
    trigger_price: int = Field(NIL_TRIGGER_PRICE, serialization_alias="TriggerPrice")
    nonce: int = Field(..., serialization_alias="Nonce")


class ChangePubKeyTx(TxInfo):
    tx_type: ClassVar[TxType] = TxType.CHANGE_PUB_KEY
    post_sign_fields: ClassVar[frozenset[str]] = frozenset({"l1_signature"})

    pub_key: str = Field(..., serialization_alias="PubKey")
    nonce: int = Field(..., serialization_alias="Nonce")
    l1_signature: Optional[str] = Field(None, serialization_alias="L1Sig")

    @property
    def l1_message(self) -> str:
        """Message the L1 (Ethereum) key signs to authorise the new key."""
        return (
            "Register Lighter Account\n\n"
            f"pubkey: {self.pub_key}\n"
            f"nonce: {self.nonce}\n"
            f"account index: {self.account_index}\n"
            f"api key index: {self.api_key_index}\n"
            "Only sign this message for a trusted client!"
        )


@dataclass(frozen=True)
class SignedTransaction:
    """A signed transaction ready for submission.

    Attributes:
        tx_type: Transaction type code
        tx_info: Exact JSON string to submit
    """
    tx_type: int
    tx_info: str

    @property
    def info(self) -> dict[str, Any]:
        return json.loads(self.tx_info)

    @classmethod
    def from_tx(cls, tx: TxInfo) -> "SignedTransaction":
        return cls(tx_type=int(tx.tx_type), tx_info=tx.to_json())


@dataclass(frozen=True)
class CreateOrderParams:
    """Caller-facing parameters for a new order.

    Attributes:
        market_index: Market to trade
        client_order_index: Caller-chosen de-duplication key
        base_amount: Size in the smallest base unit
        price: Price in the smallest quote unit
        is_ask: True to sell, False to buy
        order_type: OrderType code
        time_in_force: TimeInForce code
        reduce_only: Only decrease an existing position
        trigger_price: Activation price for conditional orders (0 = none)
        order_expiry: Absolute expiry in ms; None or -1 selects the 28-day default
    """
    market_index: int
    client_order_index: int
    base_amount: int
    price: int
    is_ask: bool
    order_type: int
    time_in_force: int
    reduce_only: bool = False
    trigger_price: int = NIL_TRIGGER_PRICE
    order_expiry: Optional[int] = None
