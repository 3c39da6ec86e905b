"""Native signing backend.

Loads the venue's signer shared library with ctypes. The library holds the
API key after ``CreateClient`` and returns the complete ``tx_info`` JSON for
each signed transaction.

Only the operations exported by the library are advertised; withdraw,
sub-account creation, order modification and key rotation are not.
"""

import ctypes
import json
import logging
import time
from typing import Any, Optional

from lighter_tx.config import SignerConfig
from lighter_tx.constants import DEFAULT_AUTH_TOKEN_TTL
from lighter_tx.exceptions import SignerError
from lighter_tx.signing.base import ApiKeyPair, SignerBackend, SignerCapability, SignerType
from lighter_tx.transactions import (
    CancelAllOrdersTx,
    CancelOrderTx,
    CreateOrderTx,
    SignedTransaction,
    TransferTx,
    UpdateLeverageTx,
)

logger = logging.getLogger(__name__)


class StrOrErr(ctypes.Structure):
    _fields_ = [("str", ctypes.c_char_p), ("err", ctypes.c_char_p)]


class ApiKeyResponse(ctypes.Structure):
    _fields_ = [
        ("privateKey", ctypes.c_char_p),
        ("publicKey", ctypes.c_char_p),
        ("err", ctypes.c_char_p),
    ]


def _decode(value: Optional[bytes]) -> Optional[str]:
    return value.decode("utf-8") if value else None


def _sanitize_private_key(key: str) -> str:
    cleaned = key.strip()
    return cleaned[2:] if cleaned.startswith("0x") else cleaned


class NativeSigner(SignerBackend):
    """Signer backed by the native shared library.

    Args:
        config: Client configuration; ``signer_library_path`` must be set
        library: Already-loaded library handle. When omitted the library is
            loaded from ``signer_library_path`` during ``initialize()``.
    """

    capabilities = frozenset({
        SignerCapability.CREATE_ORDER,
        SignerCapability.CANCEL_ORDER,
        SignerCapability.CANCEL_ALL_ORDERS,
        SignerCapability.TRANSFER,
        SignerCapability.UPDATE_LEVERAGE,
        SignerCapability.AUTH_TOKEN,
        SignerCapability.GENERATE_API_KEY,
    })

    def __init__(self, config: SignerConfig, library: Any = None):
        super().__init__(SignerType.NATIVE, config)
        if library is None and not config.signer_library_path:
            raise SignerError("Native signer requires signer_library_path")
        self._lib = library
        self._configured = False

    async def _initialize(self) -> None:
        self._load_library()
        self._create_client()

    def _load_library(self) -> None:
        if self._configured:
            return
        if self._lib is None:
            try:
                self._lib = ctypes.CDLL(self.config.signer_library_path)
            except OSError as e:
                raise SignerError(
                    f"Unable to load signer library '{self.config.signer_library_path}': {e}"
                ) from e
        self._configure_library()
        self._configured = True

    def _configure_library(self) -> None:
        lib = self._lib

        lib.CreateClient.argtypes = [
            ctypes.c_char_p,
            ctypes.c_char_p,
            ctypes.c_int,
            ctypes.c_int,
            ctypes.c_longlong,
        ]
        lib.CreateClient.restype = ctypes.c_char_p

        lib.CheckClient.argtypes = [ctypes.c_int, ctypes.c_longlong]
        lib.CheckClient.restype = ctypes.c_char_p

        lib.GenerateAPIKey.argtypes = [ctypes.c_char_p]
        lib.GenerateAPIKey.restype = ApiKeyResponse

        lib.CreateAuthToken.argtypes = [ctypes.c_longlong]
        lib.CreateAuthToken.restype = StrOrErr

        lib.SignCreateOrder.argtypes = [
            ctypes.c_int,
            ctypes.c_longlong,
            ctypes.c_longlong,
            ctypes.c_int,
            ctypes.c_int,
            ctypes.c_int,
            ctypes.c_int,
            ctypes.c_int,
            ctypes.c_int,
            ctypes.c_longlong,
            ctypes.c_longlong,
        ]
        lib.SignCreateOrder.restype = StrOrErr

        lib.SignCancelOrder.argtypes = [ctypes.c_int, ctypes.c_longlong, ctypes.c_longlong]
        lib.SignCancelOrder.restype = StrOrErr

        lib.SignCancelAllOrders.argtypes = [ctypes.c_int, ctypes.c_longlong, ctypes.c_longlong]
        lib.SignCancelAllOrders.restype = StrOrErr

        lib.SignTransfer.argtypes = [
            ctypes.c_longlong,
            ctypes.c_longlong,
            ctypes.c_longlong,
            ctypes.c_char_p,
            ctypes.c_longlong,
        ]
        lib.SignTransfer.restype = StrOrErr

        lib.SignUpdateLeverage.argtypes = [ctypes.c_int, ctypes.c_int, ctypes.c_int, ctypes.c_longlong]
        lib.SignUpdateLeverage.restype = StrOrErr

    def _create_client(self) -> None:
        err = self._lib.CreateClient(
            self.config.base_url.encode("utf-8"),
            _sanitize_private_key(self.config.private_key).encode("utf-8"),
            self.config.resolved_chain_id,
            self.config.api_key_index,
            self.config.account_index,
        )
        if err:
            raise SignerError(f"CreateClient failed: {_decode(err)}")

    def check_client(self) -> Optional[str]:
        """Ask the library whether the registered key matches the account.

        Returns the error text, or None when the client is valid.
        """
        self.ensure_ready()
        return _decode(self._lib.CheckClient(self.config.api_key_index, self.config.account_index))

    def _result(self, result: Any, tx_type: int) -> SignedTransaction:
        tx_info = _decode(result.str)
        error = _decode(result.err)
        if error:
            raise SignerError(error)
        if not tx_info:
            raise SignerError("Signer returned empty tx_info payload")
        try:
            json.loads(tx_info)
        except ValueError as e:
            raise SignerError("Signer returned tx_info that is not valid JSON") from e
        return SignedTransaction(tx_type=int(tx_type), tx_info=tx_info)

    async def sign_create_order(self, tx: CreateOrderTx) -> SignedTransaction:
        self.ensure_ready()
        result = self._lib.SignCreateOrder(
            tx.market_index,
            tx.client_order_index,
            tx.base_amount,
            tx.price,
            tx.is_ask,
            tx.order_type,
            tx.time_in_force,
            tx.reduce_only,
            tx.trigger_price,
            tx.effective_expiry,
            tx.nonce,
        )
        return self._result(result, tx.tx_type)

    async def sign_cancel_order(self, tx: CancelOrderTx) -> SignedTransaction:
        self.ensure_ready()
        result = self._lib.SignCancelOrder(tx.market_index, tx.order_index, tx.nonce)
        return self._result(result, tx.tx_type)

    async def sign_cancel_all_orders(self, tx: CancelAllOrdersTx) -> SignedTransaction:
        self.ensure_ready()
        result = self._lib.SignCancelAllOrders(tx.time_in_force, tx.time, tx.nonce)
        return self._result(result, tx.tx_type)

    async def sign_transfer(self, tx: TransferTx) -> SignedTransaction:
        self.ensure_ready()
        result = self._lib.SignTransfer(
            tx.to_account_index,
            tx.usdc_amount,
            tx.fee,
            tx.memo.encode("utf-8"),
            tx.nonce,
        )
        return self._result(result, tx.tx_type)

    async def sign_update_leverage(self, tx: UpdateLeverageTx) -> SignedTransaction:
        self.ensure_ready()
        result = self._lib.SignUpdateLeverage(
            tx.market_index, tx.initial_margin_fraction, tx.margin_mode, tx.nonce
        )
        return self._result(result, tx.tx_type)

    async def create_auth_token(self, deadline: Optional[int] = None) -> str:
        self.ensure_ready()
        if deadline is None:
            deadline = int(time.time()) + DEFAULT_AUTH_TOKEN_TTL
        result = self._lib.CreateAuthToken(deadline)
        token = _decode(result.str)
        error = _decode(result.err)
        if error or not token:
            raise SignerError(f"CreateAuthToken failed: {error or 'empty token'}")
        return token

    async def generate_api_key(self, seed: Optional[str] = None) -> ApiKeyPair:
        """Generate a fresh API key pair; the library need not hold a client."""
        self._load_library()
        result = self._lib.GenerateAPIKey(seed.encode("utf-8") if seed else None)
        error = _decode(result.err)
        if error:
            raise SignerError(f"GenerateAPIKey failed: {error}")
        return ApiKeyPair(
            private_key=_decode(result.privateKey) or "",
            public_key=_decode(result.publicKey) or "",
        )
