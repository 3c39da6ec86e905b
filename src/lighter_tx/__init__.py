"""lighter-tx: transaction lifecycle SDK for the Lighter exchange."""

from lighter_tx.client import ClosePositionsResult, SignerClient, TxResult
from lighter_tx.config import Settings, SignerConfig, get_settings
from lighter_tx.constants import (
    FILL_OR_KILL_CODE,
    CancelAllTimeInForce,
    MarginMode,
    OrderType,
    TimeInForce,
    TxType,
)
from lighter_tx.exceptions import (
    ApiError,
    ConfigurationError,
    LighterError,
    NonceError,
    SignerCapabilityError,
    SignerError,
    TransactionError,
    TransactionTimeoutError,
    ValidationError,
)
from lighter_tx.nonce import ApiNonceSource, NonceCache
from lighter_tx.transactions import CreateOrderParams, SignedTransaction

__version__ = "0.1.0"

__all__ = [
    "FILL_OR_KILL_CODE",
    "ApiError",
    "ApiNonceSource",
    "CancelAllTimeInForce",
    "ClosePositionsResult",
    "ConfigurationError",
    "CreateOrderParams",
    "LighterError",
    "MarginMode",
    "NonceCache",
    "NonceError",
    "OrderType",
    "Settings",
    "SignedTransaction",
    "SignerCapabilityError",
    "SignerClient",
    "SignerConfig",
    "SignerError",
    "TimeInForce",
    "TransactionError",
    "TransactionTimeoutError",
    "TxResult",
    "TxType",
    "ValidationError",
    "get_settings",
]
