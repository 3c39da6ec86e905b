"""Signer client: the transaction lifecycle orchestrator.

Every transaction-producing operation follows the same path:

    check_client -> capability check -> nonce -> build -> sign -> submit

and returns a ``TxResult(tx, tx_hash, error)``. Expected failures (validation,
nonce, signing, transport, ledger rejection) are returned in ``error``, never
raised. The one exception is ``SignerCapabilityError``, which is raised at
call time, before any network I/O, when the active backend lacks the
operation.
"""

import json
import logging
import time
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Awaitable, Callable, NamedTuple, Optional, Sequence

from eth_account import Account as EthAccount
from eth_account.messages import encode_defunct
from pydantic import ValidationError as PydanticValidationError

from lighter_tx import builder
from lighter_tx.api.account import AccountApi
from lighter_tx.api.client import ApiClient
from lighter_tx.api.models import TransactionRecord
from lighter_tx.api.transaction import TransactionApi
from lighter_tx.builder import Amount
from lighter_tx.config import Settings, SignerConfig, get_settings
from lighter_tx.constants import (
    DEFAULT_10_MIN_AUTH_EXPIRY,
    DEFAULT_28_DAY_ORDER_EXPIRY,
    DEFAULT_IOC_EXPIRY,
    DEFAULT_TRANSFER_MEMO,
    NIL_TRIGGER_PRICE,
    OrderType,
    TimeInForce,
)
from lighter_tx.exceptions import LighterError, SignerCapabilityError, ValidationError
from lighter_tx.nonce import ApiNonceSource, NonceCache, NonceSource
from lighter_tx.poller import TransactionPoller
from lighter_tx.signing.base import ApiKeyPair, SignerBackend, SignerCapability
from lighter_tx.signing.factory import create_signer_backend
from lighter_tx.transactions import CreateOrderParams, SignedTransaction, TxInfo

logger = logging.getLogger(__name__)

BuildFn = Callable[[int], TxInfo]
SignFn = Callable[[Any], Awaitable[SignedTransaction]]


class TxResult(NamedTuple):
    """Outcome of a transaction operation.

    Attributes:
        tx: Decoded signed payload, or None on failure
        tx_hash: Transaction hash, or None on failure
        error: The failure, or None on success
    """
    tx: Optional[dict[str, Any]]
    tx_hash: Optional[str]
    error: Optional[LighterError]

    @property
    def ok(self) -> bool:
        return self.error is None


class ClosePositionsResult(NamedTuple):
    transactions: list[dict[str, Any]]
    tx_hashes: list[str]
    errors: list[str]


class SignerClient:
    """Builds, signs and submits transactions for one account API key.

    Example:
        config = SignerConfig(private_key=key, account_index=1, api_key_index=2,
                              signer_url="http://127.0.0.1:8080")
        async with SignerClient(config) as client:
            tx, tx_hash, error = await client.create_order(params)
    """

    def __init__(
        self,
        config: SignerConfig,
        settings: Optional[Settings] = None,
        api_client: Optional[ApiClient] = None,
        signer: Optional[SignerBackend] = None,
        nonce_source: Optional[NonceSource] = None,
        use_nonce_cache: bool = False,
    ):
        """Initialize the client.

        Args:
            config: Account, key and backend configuration
            settings: SDK tunables (defaults to ``get_settings()``)
            api_client: REST client; created from ``config`` when omitted
            signer: Signing backend; resolved from ``config`` when omitted
            nonce_source: Nonce source; defaults to one lookup per transaction
            use_nonce_cache: Wrap the default source in a ``NonceCache``
        """
        self.config = config
        self.settings = settings or get_settings()
        self.api_client = api_client or ApiClient(
            config.base_url,
            timeout=config.timeout,
            user_agent=self.settings.user_agent,
        )
        self.transaction_api = TransactionApi(self.api_client)
        self.account_api = AccountApi(self.api_client)
        self.signer = signer or create_signer_backend(config)

        if nonce_source is None:
            api_source = ApiNonceSource(self.transaction_api)
            if use_nonce_cache:
                nonce_source = NonceCache(
                    api_source.fetch_batch,
                    batch_size=self.settings.nonce_batch_size,
                    low_water_mark=self.settings.nonce_low_water_mark,
                    max_age=self.settings.nonce_max_age,
                )
            else:
                nonce_source = api_source
        self.nonce_source = nonce_source

    # ======================
    # Lifecycle
    # ======================

    async def initialize(self) -> None:
        """Warm up the signing backend. Safe to call repeatedly."""
        await self.signer.initialize()

    async def close(self) -> None:
        await self.signer.close()
        await self.api_client.close()

    async def __aenter__(self) -> "SignerClient":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False

    def check_client(self) -> Optional[ValidationError]:
        """Validate the configuration; return the first problem or None."""
        if not self.config.private_key:
            return ValidationError("Private key is required")
        if self.config.account_index < 0:
            return ValidationError(f"Invalid account index: {self.config.account_index}")
        if self.config.api_key_index < 0:
            return ValidationError(f"Invalid API key index: {self.config.api_key_index}")
        return None

    # ======================
    # Pipeline
    # ======================

    async def _next_nonce(self) -> int:
        return await self.nonce_source.get_next_nonce(
            self.config.account_index, self.config.api_key_index
        )

    def _acknowledge_failure(self, nonce: Optional[int] = None) -> None:
        self.nonce_source.acknowledge_failure(
            self.config.account_index, self.config.api_key_index, nonce=nonce
        )

    async def _sign(
        self,
        capability: SignerCapability,
        build: BuildFn,
        sign: SignFn,
        nonce: Optional[int],
    ) -> SignedTransaction:
        """Capability check, nonce, build and sign. Raises on failure."""
        self.signer.require(capability)
        error = self.check_client()
        if error is not None:
            raise error

        await self.signer.initialize()
        fetched = nonce is None
        if fetched:
            nonce = await self._next_nonce()
        try:
            return await sign(self._build(build, nonce))
        except LighterError:
            if fetched:
                self._acknowledge_failure(nonce)
            raise

    @staticmethod
    def _build(build: BuildFn, nonce: int) -> TxInfo:
        try:
            return build(nonce)
        except PydanticValidationError as e:
            error = e.errors()[0]
            field = ".".join(str(part) for part in error["loc"])
            raise ValidationError(f"Invalid {field}: {error['msg']}") from e

    async def _process(
        self,
        capability: SignerCapability,
        build: BuildFn,
        sign: SignFn,
        nonce: Optional[int] = None,
    ) -> TxResult:
        """Run the full pipeline, returning failures inside the result."""
        # Raised before anything touches the network
        self.signer.require(capability)

        try:
            signed = await self._sign(capability, build, sign, nonce)
        except SignerCapabilityError:
            raise
        except LighterError as e:
            logger.error(f"{capability.value} failed: {e}")
            return TxResult(None, None, e)

        try:
            tx_hash = await self.transaction_api.send_tx(signed.tx_type, signed.tx_info)
        except LighterError as e:
            logger.error(f"{capability.value} submission failed: {e}")
            self._acknowledge_failure(signed.info.get("Nonce"))
            return TxResult(None, None, e)

        logger.info(f"Submitted tx type {signed.tx_type}: {tx_hash}")
        return TxResult(signed.info, tx_hash, None)

    # ======================
    # Orders
    # ======================

    def _order_builder(self, params: CreateOrderParams) -> BuildFn:
        return lambda n: builder.build_create_order(self.config, params, n)

    async def sign_create_order(
        self, params: CreateOrderParams, nonce: Optional[int] = None
    ) -> SignedTransaction:
        return await self._sign(
            SignerCapability.CREATE_ORDER,
            self._order_builder(params),
            self.signer.sign_create_order,
            nonce,
        )

    async def create_order(self, params: CreateOrderParams, nonce: Optional[int] = None) -> TxResult:
        """Create an order (tx type 14)."""
        return await self._process(
            SignerCapability.CREATE_ORDER,
            self._order_builder(params),
            self.signer.sign_create_order,
            nonce,
        )

    async def create_market_order(
        self,
        market_index: int,
        client_order_index: int,
        base_amount: int,
        avg_execution_price: int,
        is_ask: bool,
        reduce_only: bool = False,
        nonce: Optional[int] = None,
    ) -> TxResult:
        """Market order: immediate-or-cancel, no trigger, expiry 0.

        ``avg_execution_price`` is the worst acceptable price.
        """
        params = CreateOrderParams(
            market_index=market_index,
            client_order_index=client_order_index,
            base_amount=base_amount,
            price=avg_execution_price,
            is_ask=is_ask,
            order_type=OrderType.MARKET,
            time_in_force=TimeInForce.IMMEDIATE_OR_CANCEL,
            reduce_only=reduce_only,
            trigger_price=NIL_TRIGGER_PRICE,
            order_expiry=DEFAULT_IOC_EXPIRY,
        )
        return await self.create_order(params, nonce=nonce)

    async def create_market_order_max_slippage(
        self,
        market_index: int,
        client_order_index: int,
        base_amount: int,
        max_slippage: float,
        is_ask: bool,
        ideal_price: Optional[int] = None,
        reduce_only: bool = False,
        nonce: Optional[int] = None,
    ) -> TxResult:
        """Market order priced at ``ideal_price`` moved by ``max_slippage``.

        Asks accept down to ``ideal * (1 - slippage)``, bids up to
        ``ideal * (1 + slippage)``. A reference price is required.
        """
        if ideal_price is None:
            return TxResult(None, None, ValidationError("ideal_price is required for slippage orders"))
        if max_slippage < 0:
            return TxResult(None, None, ValidationError("max_slippage must be non-negative"))

        slippage = Decimal(str(max_slippage))
        factor = 1 - slippage if is_ask else 1 + slippage
        price = int((Decimal(str(ideal_price)) * factor).to_integral_value(rounding=ROUND_HALF_UP))
        logger.debug(f"Slippage price for market {market_index}: {ideal_price} -> {price}")

        return await self.create_market_order(
            market_index,
            client_order_index,
            base_amount,
            price,
            is_ask,
            reduce_only=reduce_only,
            nonce=nonce,
        )

    async def _conditional_order(
        self,
        order_type: OrderType,
        time_in_force: TimeInForce,
        market_index: int,
        client_order_index: int,
        base_amount: int,
        trigger_price: int,
        price: int,
        is_ask: bool,
        reduce_only: bool,
        nonce: Optional[int],
    ) -> TxResult:
        params = CreateOrderParams(
            market_index=market_index,
            client_order_index=client_order_index,
            base_amount=base_amount,
            price=price,
            is_ask=is_ask,
            order_type=order_type,
            time_in_force=time_in_force,
            reduce_only=reduce_only,
            trigger_price=trigger_price,
            order_expiry=DEFAULT_28_DAY_ORDER_EXPIRY,
        )
        return await self.create_order(params, nonce=nonce)

    async def create_tp_order(
        self,
        market_index: int,
        client_order_index: int,
        base_amount: int,
        trigger_price: int,
        price: int,
        is_ask: bool,
        reduce_only: bool = False,
        nonce: Optional[int] = None,
    ) -> TxResult:
        """Take-profit market order, fired at ``trigger_price``."""
        return await self._conditional_order(
            OrderType.TAKE_PROFIT, TimeInForce.IMMEDIATE_OR_CANCEL,
            market_index, client_order_index, base_amount, trigger_price, price,
            is_ask, reduce_only, nonce,
        )

    async def create_tp_limit_order(
        self,
        market_index: int,
        client_order_index: int,
        base_amount: int,
        trigger_price: int,
        price: int,
        is_ask: bool,
        reduce_only: bool = False,
        nonce: Optional[int] = None,
    ) -> TxResult:
        return await self._conditional_order(
            OrderType.TAKE_PROFIT_LIMIT, TimeInForce.GOOD_TILL_TIME,
            market_index, client_order_index, base_amount, trigger_price, price,
            is_ask, reduce_only, nonce,
        )

    async def create_sl_order(
        self,
        market_index: int,
        client_order_index: int,
        base_amount: int,
        trigger_price: int,
        is_ask: bool,
        price: int = 0,
        reduce_only: bool = False,
        nonce: Optional[int] = None,
    ) -> TxResult:
        """Stop-loss market order.

        A ``price`` of 1 or less executes at the trigger price.
        """
        execution_price = trigger_price if price <= 1 else price
        return await self._conditional_order(
            OrderType.STOP_LOSS, TimeInForce.IMMEDIATE_OR_CANCEL,
            market_index, client_order_index, base_amount, trigger_price, execution_price,
            is_ask, reduce_only, nonce,
        )

    async def create_sl_limit_order(
        self,
        market_index: int,
        client_order_index: int,
        base_amount: int,
        trigger_price: int,
        price: int,
        is_ask: bool,
        reduce_only: bool = False,
        nonce: Optional[int] = None,
    ) -> TxResult:
        return await self._conditional_order(
            OrderType.STOP_LOSS_LIMIT, TimeInForce.GOOD_TILL_TIME,
            market_index, client_order_index, base_amount, trigger_price, price,
            is_ask, reduce_only, nonce,
        )

    async def sign_cancel_order(
        self, market_index: int, order_index: int, nonce: Optional[int] = None
    ) -> SignedTransaction:
        return await self._sign(
            SignerCapability.CANCEL_ORDER,
            lambda n: builder.build_cancel_order(self.config, market_index, order_index, n),
            self.signer.sign_cancel_order,
            nonce,
        )

    async def cancel_order(self, market_index: int, order_index: int, nonce: Optional[int] = None) -> TxResult:
        return await self._process(
            SignerCapability.CANCEL_ORDER,
            lambda n: builder.build_cancel_order(self.config, market_index, order_index, n),
            self.signer.sign_cancel_order,
            nonce,
        )

    async def cancel_all_orders(self, time_in_force: int, time: int, nonce: Optional[int] = None) -> TxResult:
        """Cancel every open order.

        Args:
            time_in_force: CancelAllTimeInForce code
            time: Absolute deadline for scheduled cancels (ignored when immediate)
        """
        return await self._process(
            SignerCapability.CANCEL_ALL_ORDERS,
            lambda n: builder.build_cancel_all_orders(self.config, time_in_force, time, n),
            self.signer.sign_cancel_all_orders,
            nonce,
        )

    async def modify_order(
        self,
        market_index: int,
        order_index: int,
        base_amount: int,
        price: int,
        trigger_price: int = NIL_TRIGGER_PRICE,
        nonce: Optional[int] = None,
    ) -> TxResult:
        return await self._process(
            SignerCapability.MODIFY_ORDER,
            lambda n: builder.build_modify_order(
                self.config, market_index, order_index, base_amount, price, trigger_price, n
            ),
            self.signer.sign_modify_order,
            nonce,
        )

    # ======================
    # Account operations
    # ======================

    async def sign_transfer(
        self,
        to_account_index: int,
        usdc_amount: Amount,
        memo: str = DEFAULT_TRANSFER_MEMO,
        nonce: Optional[int] = None,
    ) -> SignedTransaction:
        return await self._sign(
            SignerCapability.TRANSFER,
            lambda n: builder.build_transfer(self.config, to_account_index, usdc_amount, memo, n),
            self.signer.sign_transfer,
            nonce,
        )

    async def transfer(
        self,
        to_account_index: int,
        usdc_amount: Amount,
        memo: str = DEFAULT_TRANSFER_MEMO,
        nonce: Optional[int] = None,
    ) -> TxResult:
        """Transfer USDC to another account.

        ``usdc_amount`` is in whole USDC and is scaled to 1e-6 units.
        """
        return await self._process(
            SignerCapability.TRANSFER,
            lambda n: builder.build_transfer(self.config, to_account_index, usdc_amount, memo, n),
            self.signer.sign_transfer,
            nonce,
        )

    async def update_leverage(
        self,
        market_index: int,
        margin_mode: int,
        initial_margin_fraction: int,
        nonce: Optional[int] = None,
    ) -> TxResult:
        return await self._process(
            SignerCapability.UPDATE_LEVERAGE,
            lambda n: builder.build_update_leverage(
                self.config, market_index, margin_mode, initial_margin_fraction, n
            ),
            self.signer.sign_update_leverage,
            nonce,
        )

    async def withdraw(self, usdc_amount: Amount, nonce: Optional[int] = None) -> TxResult:
        return await self._process(
            SignerCapability.WITHDRAW,
            lambda n: builder.build_withdraw(self.config, usdc_amount, n),
            self.signer.sign_withdraw,
            nonce,
        )

    async def create_sub_account(self, nonce: Optional[int] = None) -> TxResult:
        return await self._process(
            SignerCapability.CREATE_SUB_ACCOUNT,
            lambda n: builder.build_create_sub_account(self.config, n),
            self.signer.sign_create_sub_account,
            nonce,
        )

    async def change_api_key(
        self, eth_private_key: str, new_pubkey: str, nonce: Optional[int] = None
    ) -> TxResult:
        """Register ``new_pubkey`` for this API key index.

        The backend signs the L2 payload; the account's Ethereum key then
        signs the registration message, attached as ``L1Sig``.
        """

        async def sign_both(tx) -> SignedTransaction:
            signed = await self.signer.sign_change_pub_key(tx)
            info = signed.info
            try:
                message = encode_defunct(text=tx.l1_message)
                l1_signed = EthAccount.from_key(eth_private_key).sign_message(message)
            except (ValueError, TypeError) as e:
                raise ValidationError(f"Invalid Ethereum private key: {e}") from e
            signature = l1_signed.signature.hex()
            if not signature.startswith("0x"):
                signature = "0x" + signature
            info["L1Sig"] = signature
            return SignedTransaction(tx_type=signed.tx_type, tx_info=_compact_json(info))

        return await self._process(
            SignerCapability.CHANGE_PUB_KEY,
            lambda n: builder.build_change_pub_key(self.config, new_pubkey, n),
            sign_both,
            nonce,
        )

    # ======================
    # Batches, tokens, keys
    # ======================

    async def send_tx_batch(self, signed_txs: Sequence[SignedTransaction]) -> list[str]:
        """Submit pre-signed transactions in one request.

        Returns hashes in the order of ``signed_txs``. A failed batch
        invalidates cached nonces.
        """
        try:
            return await self.transaction_api.send_tx_batch(
                self.config.account_index,
                self.config.api_key_index,
                [tx.tx_info for tx in signed_txs],
            )
        except LighterError:
            if signed_txs:
                self._acknowledge_failure()
            raise

    async def create_auth_token_with_expiry(
        self, expiry_seconds: int = DEFAULT_10_MIN_AUTH_EXPIRY
    ) -> str:
        """Create an auth token expiring ``expiry_seconds`` from now.

        The default sentinel lets the backend choose (10 minutes).
        """
        self.signer.require(SignerCapability.AUTH_TOKEN)
        await self.signer.initialize()
        deadline = None
        if expiry_seconds != DEFAULT_10_MIN_AUTH_EXPIRY:
            deadline = int(time.time()) + expiry_seconds
        return await self.signer.create_auth_token(deadline)

    async def generate_api_key(self, seed: Optional[str] = None) -> ApiKeyPair:
        """Generate a new API key pair; deterministic for a given seed."""
        self.signer.require(SignerCapability.GENERATE_API_KEY)
        return await self.signer.generate_api_key(seed)

    # ======================
    # Positions and confirmation
    # ======================

    async def close_all_positions(self) -> ClosePositionsResult:
        """Close every open position with a reduce-only market order.

        Failures are collected per market; this never raises for them.
        """
        self.signer.require(SignerCapability.CREATE_ORDER)
        result = ClosePositionsResult([], [], [])

        try:
            account = await self.account_api.get_account(self.config.account_index)
        except Exception as e:
            logger.error(f"Could not load positions for account {self.config.account_index}: {e}")
            result.errors.append(f"Failed to load positions: {e}")
            return result

        base_index = int(time.time() * 1000)
        for i, position in enumerate(account.open_positions):
            market = position.market_id
            if position.mark_price is None:
                result.errors.append(f"Failed to close position in market {market}: no mark price")
                continue

            try:
                tx, tx_hash, error = await self.create_market_order(
                    market_index=market,
                    client_order_index=base_index + i,
                    base_amount=int(abs(position.size)),
                    avg_execution_price=int(position.mark_price),
                    is_ask=position.is_long,
                    reduce_only=True,
                )
            except Exception as e:
                logger.exception(f"Error closing position in market {market}")
                result.errors.append(f"Error closing position in market {market}: {e}")
                continue
            if error is not None:
                logger.warning(f"Closing position in market {market} failed: {error}")
                result.errors.append(f"Failed to close position in market {market}: {error}")
                continue

            result.transactions.append(tx)
            result.tx_hashes.append(tx_hash)
            logger.info(f"Closed {'long' if position.is_long else 'short'} position in market {market}")

        return result

    async def get_transaction(self, tx_hash: str) -> TransactionRecord:
        return await self.transaction_api.get_transaction(tx_hash)

    async def wait_for_transaction(
        self,
        tx_hash: str,
        max_wait_ms: Optional[int] = None,
        poll_interval_ms: Optional[int] = None,
    ) -> TransactionRecord:
        """Poll until ``tx_hash`` is confirmed.

        Raises:
            TransactionError: The ledger reported the transaction as failed
            TransactionTimeoutError: Not confirmed within ``max_wait_ms``
        """
        poller = TransactionPoller(self.transaction_api.get_transaction)
        return await poller.wait(
            tx_hash,
            max_wait_ms=max_wait_ms if max_wait_ms is not None else self.settings.wait_max_ms,
            poll_interval_ms=(
                poll_interval_ms if poll_interval_ms is not None
                else self.settings.wait_poll_interval_ms
            ),
        )


def _compact_json(data: dict[str, Any]) -> str:
    return json.dumps(data, separators=(",", ":"))
