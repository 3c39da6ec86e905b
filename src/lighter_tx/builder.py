"""Transaction builder.

Pure functions mapping (config, parameters, nonce) to canonical transaction
models. Nothing here performs I/O or signing.
"""

import logging
from decimal import ROUND_DOWN, Decimal
from typing import Optional, Union

from lighter_tx.config import SignerConfig
from lighter_tx.constants import (
    DEFAULT_28_DAY_ORDER_EXPIRY,
    DEFAULT_IOC_EXPIRY,
    TRANSFER_MEMO_LENGTH,
    USDC_TICKER_SCALE,
    CancelAllTimeInForce,
    TimeInForce,
)
from lighter_tx.exceptions import ValidationError
from lighter_tx.transactions import (
    CancelAllOrdersTx,
    CancelOrderTx,
    ChangePubKeyTx,
    CreateOrderParams,
    CreateOrderTx,
    CreateSubAccountTx,
    ModifyOrderTx,
    TransferTx,
    UpdateLeverageTx,
    WithdrawTx,
)

logger = logging.getLogger(__name__)

Amount = Union[int, float, str, Decimal]


def resolve_order_expiry(time_in_force: int, order_expiry: Optional[int]) -> int:
    """Resolve the effective order expiry.

    Immediate-or-cancel orders always get expiry 0. Otherwise an explicit
    expiry is kept and a missing one becomes the -1 default sentinel.
    """
    if time_in_force == TimeInForce.IMMEDIATE_OR_CANCEL:
        return DEFAULT_IOC_EXPIRY
    if order_expiry is None:
        return DEFAULT_28_DAY_ORDER_EXPIRY
    return int(order_expiry)


def scale_usdc(amount: Amount) -> int:
    """Convert a USDC amount to integer ticker units (1e-6)."""
    try:
        value = Decimal(str(amount))
    except ArithmeticError as e:
        raise ValidationError(f"Invalid USDC amount: {amount!r}") from e
    if value < 0:
        raise ValidationError("USDC amount must be non-negative")
    return int((value * USDC_TICKER_SCALE).to_integral_value(rounding=ROUND_DOWN))


def build_create_order(config: SignerConfig, params: CreateOrderParams, nonce: int) -> CreateOrderTx:
    """Build a create-order transaction.

    Field order: AccountIndex, ApiKeyIndex, MarketIndex, ClientOrderIndex,
    BaseAmount, Price, IsAsk, Type, TimeInForce, ReduceOnly, TriggerPrice,
    Nonce, then OrderExpiry and ExpiredAt only when an explicit expiry
    applies.
    """
    expiry = resolve_order_expiry(params.time_in_force, params.order_expiry)
    explicit = None if expiry == DEFAULT_28_DAY_ORDER_EXPIRY else expiry

    return CreateOrderTx(
        account_index=config.account_index,
        api_key_index=config.api_key_index,
        market_index=params.market_index,
        client_order_index=params.client_order_index,
        base_amount=int(params.base_amount),
        price=int(params.price),
        is_ask=1 if params.is_ask else 0,
        order_type=int(params.order_type),
        time_in_force=int(params.time_in_force),
        reduce_only=1 if params.reduce_only else 0,
        trigger_price=int(params.trigger_price),
        nonce=nonce,
        order_expiry=explicit,
        expired_at=explicit,
    )


def build_cancel_order(config: SignerConfig, market_index: int, order_index: int, nonce: int) -> CancelOrderTx:
    return CancelOrderTx(
        account_index=config.account_index,
        api_key_index=config.api_key_index,
        market_index=market_index,
        order_index=order_index,
        nonce=nonce,
    )


def build_cancel_all_orders(config: SignerConfig, time_in_force: int, time: int, nonce: int) -> CancelAllOrdersTx:
    if time_in_force not in set(CancelAllTimeInForce):
        raise ValidationError(f"Invalid cancel-all time in force: {time_in_force}")
    # The deadline only applies to scheduled cancels
    if time_in_force == CancelAllTimeInForce.IMMEDIATE:
        time = 0
    return CancelAllOrdersTx(
        account_index=config.account_index,
        api_key_index=config.api_key_index,
        time_in_force=int(time_in_force),
        time=int(time),
        nonce=nonce,
    )


def build_transfer(
    config: SignerConfig,
    to_account_index: int,
    usdc_amount: Amount,
    memo: str,
    nonce: int,
    fee: int = 0,
) -> TransferTx:
    if len(memo) != TRANSFER_MEMO_LENGTH:
        raise ValidationError(f"Transfer memo must be exactly {TRANSFER_MEMO_LENGTH} characters")
    return TransferTx(
        account_index=config.account_index,
        api_key_index=config.api_key_index,
        to_account_index=to_account_index,
        usdc_amount=scale_usdc(usdc_amount),
        fee=fee,
        memo=memo,
        nonce=nonce,
    )


def build_update_leverage(
    config: SignerConfig,
    market_index: int,
    margin_mode: int,
    initial_margin_fraction: int,
    nonce: int,
) -> UpdateLeverageTx:
    return UpdateLeverageTx(
        account_index=config.account_index,
        api_key_index=config.api_key_index,
        market_index=market_index,
        initial_margin_fraction=int(initial_margin_fraction),
        margin_mode=int(margin_mode),
        nonce=nonce,
    )


def build_withdraw(config: SignerConfig, usdc_amount: Amount, nonce: int) -> WithdrawTx:
    return WithdrawTx(
        account_index=config.account_index,
        api_key_index=config.api_key_index,
        usdc_amount=scale_usdc(usdc_amount),
        nonce=nonce,
    )


def build_create_sub_account(config: SignerConfig, nonce: int) -> CreateSubAccountTx:
    return CreateSubAccountTx(
        account_index=config.account_index,
        api_key_index=config.api_key_index,
        nonce=nonce,
    )


def build_modify_order(
    config: SignerConfig,
    market_index: int,
    order_index: int,
    base_amount: int,
    price: int,
    trigger_price: int,
    nonce: int,
) -> ModifyOrderTx:
    return ModifyOrderTx(
        account_index=config.account_index,
        api_key_index=config.api_key_index,
        market_index=market_index,
        order_index=order_index,
        base_amount=int(base_amount),
        price=int(price),
        trigger_price=int(trigger_price),
        nonce=nonce,
    )


def build_change_pub_key(config: SignerConfig, new_pubkey: str, nonce: int) -> ChangePubKeyTx:
    if not new_pubkey:
        raise ValidationError("New public key is required")
    return ChangePubKeyTx(
        account_index=config.account_index,
        api_key_index=config.api_key_index,
        pub_key=new_pubkey,
        nonce=nonce,
    )
