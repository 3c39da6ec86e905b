"""REST access for the transaction core."""

from lighter_tx.api.account import AccountApi
from lighter_tx.api.client import ApiClient
from lighter_tx.api.models import (
    Account,
    AccountPosition,
    NextNonce,
    TransactionRecord,
    TxStatus,
)
from lighter_tx.api.transaction import TransactionApi

__all__ = [
    "Account",
    "AccountApi",
    "AccountPosition",
    "ApiClient",
    "NextNonce",
    "TransactionApi",
    "TransactionRecord",
    "TxStatus",
]
