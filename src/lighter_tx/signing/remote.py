"""Remote signing backend.

Delegates signatures to a signing service over HTTP. The service never
builds transactions: it receives the canonical payload and returns a
signature, which is attached as ``Sig``.

Endpoints:
- POST /sign    {"private_key", "message"} -> {"signature"}
- POST /pubkey  {"private_key"} -> {"public_key"}
- GET  /health  -> {"status": "ok"}
"""

import logging
import time
from typing import Any, Optional

import httpx

from lighter_tx.config import SignerConfig
from lighter_tx.constants import DEFAULT_AUTH_TOKEN_TTL
from lighter_tx.exceptions import SignerError
from lighter_tx.signing.base import SignerBackend, SignerCapability, SignerType
from lighter_tx.transactions import (
    CancelAllOrdersTx,
    CancelOrderTx,
    ChangePubKeyTx,
    CreateOrderTx,
    CreateSubAccountTx,
    ModifyOrderTx,
    SignedTransaction,
    TransferTx,
    TxInfo,
    UpdateLeverageTx,
    WithdrawTx,
)

logger = logging.getLogger(__name__)

DEFAULT_SIGNER_TIMEOUT = 10.0


class RemoteSigner(SignerBackend):
    """Signs canonical payloads through a signing service."""

    capabilities = frozenset({
        SignerCapability.CREATE_ORDER,
        SignerCapability.CANCEL_ORDER,
        SignerCapability.CANCEL_ALL_ORDERS,
        SignerCapability.TRANSFER,
        SignerCapability.UPDATE_LEVERAGE,
        SignerCapability.WITHDRAW,
        SignerCapability.CREATE_SUB_ACCOUNT,
        SignerCapability.MODIFY_ORDER,
        SignerCapability.CHANGE_PUB_KEY,
        SignerCapability.AUTH_TOKEN,
    })

    def __init__(
        self,
        config: SignerConfig,
        timeout: float = DEFAULT_SIGNER_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize remote signer.

        Args:
            config: Client configuration; ``signer_url`` must be set
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        super().__init__(SignerType.REMOTE, config)
        if not config.signer_url:
            raise SignerError("Remote signer requires signer_url")
        self.url = config.signer_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _initialize(self) -> None:
        self._client = httpx.AsyncClient(
            base_url=self.url, timeout=self.timeout, transport=self._transport
        )

    async def _post(self, endpoint: str, body: dict[str, Any]) -> dict[str, Any]:
        self.ensure_ready()
        try:
            response = await self._client.post(endpoint, json=body)
        except httpx.RequestError as e:
            raise SignerError(f"Signer service unreachable: {e}") from e

        if response.status_code != 200:
            raise SignerError(f"Signer service error: HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise SignerError(f"Signer service returned invalid JSON from {endpoint}") from e
        if not isinstance(data, dict):
            raise SignerError(f"Signer service returned unexpected payload from {endpoint}")
        if data.get("error"):
            raise SignerError(f"Signer service error: {data['error']}")
        # Some deployments wrap results in {"data": {...}}
        result = data.get("data", data)
        if not isinstance(result, dict):
            raise SignerError(f"Signer service returned unexpected payload from {endpoint}")
        return result

    async def sign_message(self, message: Any) -> str:
        data = await self._post(
            "/sign", {"private_key": self.config.private_key, "message": message}
        )
        signature = data.get("signature")
        if not signature:
            raise SignerError("Signer service returned no signature")
        return signature

    async def _sign_tx(self, tx: TxInfo) -> SignedTransaction:
        signature = await self.sign_message(tx.unsigned_payload())
        signed = tx.with_signature(signature)
        return SignedTransaction.from_tx(signed)

    async def sign_create_order(self, tx: CreateOrderTx) -> SignedTransaction:
        return await self._sign_tx(tx)

    async def sign_cancel_order(self, tx: CancelOrderTx) -> SignedTransaction:
        return await self._sign_tx(tx)

    async def sign_cancel_all_orders(self, tx: CancelAllOrdersTx) -> SignedTransaction:
        return await self._sign_tx(tx)

    async def sign_transfer(self, tx: TransferTx) -> SignedTransaction:
        return await self._sign_tx(tx)

    async def sign_update_leverage(self, tx: UpdateLeverageTx) -> SignedTransaction:
        return await self._sign_tx(tx)

    async def sign_withdraw(self, tx: WithdrawTx) -> SignedTransaction:
        return await self._sign_tx(tx)

    async def sign_create_sub_account(self, tx: CreateSubAccountTx) -> SignedTransaction:
        return await self._sign_tx(tx)

    async def sign_modify_order(self, tx: ModifyOrderTx) -> SignedTransaction:
        return await self._sign_tx(tx)

    async def sign_change_pub_key(self, tx: ChangePubKeyTx) -> SignedTransaction:
        return await self._sign_tx(tx)

    async def create_auth_token(self, deadline: Optional[int] = None) -> str:
        """Token format: ``deadline:account_index:api_key_index:signature``."""
        if deadline is None:
            deadline = int(time.time()) + DEFAULT_AUTH_TOKEN_TTL
        account_index = self.config.account_index
        api_key_index = self.config.api_key_index
        message = f"{account_index}:{api_key_index}:{deadline}"
        signature = await self.sign_message({"message": message})
        return f"{deadline}:{account_index}:{api_key_index}:{signature}"

    async def get_public_key(self) -> str:
        data = await self._post("/pubkey", {"private_key": self.config.private_key})
        return data.get("public_key", "")

    async def health_check(self) -> bool:
        """Check if the signer service reports healthy."""
        if not self._ready:
            return False
        try:
            response = await self._client.get("/health")
        except httpx.RequestError as e:
            logger.warning(f"Signer health check failed: {e}")
            return False
        if response.status_code != 200:
            return False
        try:
            data = response.json()
        except ValueError:
            logger.warning("Signer health check returned invalid JSON")
            return False
        return isinstance(data, dict) and data.get("status") == "ok"

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        self._ready = False
