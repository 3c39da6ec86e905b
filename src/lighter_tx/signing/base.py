"""Base interface for signing backends.

Signing flow:
1. Builder produces a canonical unsigned transaction
2. Backend signs it (remote service or local native module)
3. Backend returns the exact JSON to submit
4. Client submits it and returns the hash

Backends advertise a fixed capability set. Operations outside that set raise
SignerCapabilityError instead of failing with a missing-method fault.
"""

import asyncio
import logging
from abc import ABC
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from lighter_tx.config import SignerConfig
from lighter_tx.exceptions import SignerCapabilityError, SignerNotReadyError
from lighter_tx.transactions import (
    CancelAllOrdersTx,
    CancelOrderTx,
    ChangePubKeyTx,
    CreateOrderTx,
    CreateSubAccountTx,
    ModifyOrderTx,
    SignedTransaction,
    TransferTx,
    UpdateLeverageTx,
    WithdrawTx,
)

logger = logging.getLogger(__name__)


class SignerType(str, Enum):
    """Type of signing backend."""
    REMOTE = "remote"   # Signing service over HTTP
    NATIVE = "native"   # Local shared library


class SignerCapability(str, Enum):
    """Operations a backend may implement."""
    CREATE_ORDER = "sign_create_order"
    CANCEL_ORDER = "sign_cancel_order"
    CANCEL_ALL_ORDERS = "sign_cancel_all_orders"
    TRANSFER = "sign_transfer"
    UPDATE_LEVERAGE = "sign_update_leverage"
    WITHDRAW = "sign_withdraw"
    CREATE_SUB_ACCOUNT = "sign_create_sub_account"
    MODIFY_ORDER = "sign_modify_order"
    CHANGE_PUB_KEY = "sign_change_pub_key"
    AUTH_TOKEN = "create_auth_token"
    GENERATE_API_KEY = "generate_api_key"


@dataclass(frozen=True)
class ApiKeyPair:
    """A generated API key pair (hex strings)."""
    private_key: str
    public_key: str


class SignerBackend(ABC):
    """Abstract base class for signing backends.

    Lifecycle is two-phase: ``initialize()`` (idempotent) prepares the
    backend, after which signing calls are accepted. Subclasses override the
    operations listed in ``capabilities``; the defaults raise
    SignerCapabilityError.
    """

    capabilities: frozenset[SignerCapability] = frozenset()

    def __init__(self, signer_type: SignerType, config: SignerConfig):
        self.signer_type = signer_type
        self.config = config
        self._ready = False
        self._init_lock = asyncio.Lock()

    @property
    def name(self) -> str:
        return self.signer_type.value

    @property
    def is_ready(self) -> bool:
        return self._ready

    async def initialize(self) -> None:
        """Prepare the backend. Safe to call any number of times."""
        if self._ready:
            return
        async with self._init_lock:
            if self._ready:
                return
            await self._initialize()
            self._ready = True
            logger.info(f"{self.name} signer initialized")

    async def _initialize(self) -> None:
        """Backend-specific initialization, run at most once."""
        return None

    def ensure_ready(self) -> None:
        if not self._ready:
            raise SignerNotReadyError(f"{self.name} signer is not initialized; call initialize() first")

    def supports(self, capability: SignerCapability) -> bool:
        return capability in self.capabilities

    def require(self, capability: SignerCapability) -> None:
        """Raise SignerCapabilityError if ``capability`` is unavailable."""
        if not self.supports(capability):
            raise SignerCapabilityError(
                f"{capability.value} not supported with {self.name} signer"
            )

    def _unsupported(self, capability: SignerCapability):
        self.require(capability)
        # Advertised but not overridden
        raise SignerCapabilityError(f"{capability.value} not implemented by {self.name} signer")

    async def sign_create_order(self, tx: CreateOrderTx) -> SignedTransaction:
        self._unsupported(SignerCapability.CREATE_ORDER)

    async def sign_cancel_order(self, tx: CancelOrderTx) -> SignedTransaction:
        self._unsupported(SignerCapability.CANCEL_ORDER)

    async def sign_cancel_all_orders(self, tx: CancelAllOrdersTx) -> SignedTransaction:
        self._unsupported(SignerCapability.CANCEL_ALL_ORDERS)

    async def sign_transfer(self, tx: TransferTx) -> SignedTransaction:
        self._unsupported(SignerCapability.TRANSFER)

    async def sign_update_leverage(self, tx: UpdateLeverageTx) -> SignedTransaction:
        self._unsupported(SignerCapability.UPDATE_LEVERAGE)

    async def sign_withdraw(self, tx: WithdrawTx) -> SignedTransaction:
        self._unsupported(SignerCapability.WITHDRAW)

    async def sign_create_sub_account(self, tx: CreateSubAccountTx) -> SignedTransaction:
        self._unsupported(SignerCapability.CREATE_SUB_ACCOUNT)

    async def sign_modify_order(self, tx: ModifyOrderTx) -> SignedTransaction:
        self._unsupported(SignerCapability.MODIFY_ORDER)

    async def sign_change_pub_key(self, tx: ChangePubKeyTx) -> SignedTransaction:
        self._unsupported(SignerCapability.CHANGE_PUB_KEY)

    async def create_auth_token(self, deadline: Optional[int] = None) -> str:
        """Create an auth token valid until ``deadline`` (unix seconds).

        None lets the backend pick its default (10 minutes).
        """
        self._unsupported(SignerCapability.AUTH_TOKEN)

    async def generate_api_key(self, seed: Optional[str] = None) -> ApiKeyPair:
        self._unsupported(SignerCapability.GENERATE_API_KEY)

    async def health_check(self) -> bool:
        """Check if the signing backend is available."""
        return self._ready

    async def close(self) -> None:
        return None

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(type={self.signer_type.value}, ready={self._ready})"
