"""Transaction endpoints: nonce lookup, submission and status queries."""

import logging
from typing import Sequence

from lighter_tx.api.client import ApiClient
from lighter_tx.api.models import (
    NextNonce,
    TransactionRecord,
    TxHash,
    TxHashes,
    parse_response,
)
from lighter_tx.constants import MAX_BATCH_SIZE
from lighter_tx.exceptions import ApiError, BadRequestError, ValidationError

logger = logging.getLogger(__name__)

SUCCESS_CODE = 200


def _check_code(code, message) -> None:
    """Raise if the venue reported a failure in the response body."""
    if code is not None and code != SUCCESS_CODE:
        raise BadRequestError(message or f"Transaction rejected with code {code}", code=code)


class TransactionApi:
    """Wrapper for the transaction REST endpoints."""

    def __init__(self, client: ApiClient):
        self.client = client

    async def get_next_nonce(self, account_index: int, api_key_index: int) -> NextNonce:
        payload = await self.client.get(
            "/api/v1/nextNonce",
            params={"account_index": account_index, "api_key_index": api_key_index},
        )
        return parse_response(NextNonce, payload, "nextNonce")

    async def get_transaction(self, tx_hash: str) -> TransactionRecord:
        payload = await self.client.get("/api/v1/tx", params={"by": "hash", "value": tx_hash})
        return parse_response(TransactionRecord, payload, "tx")

    async def send_tx(self, tx_type: int, tx_info: str) -> str:
        """Submit one signed transaction.

        Args:
            tx_type: Transaction type code
            tx_info: JSON string of the signed transaction

        Returns:
            Transaction hash
        """
        payload = await self.client.post(
            "/api/v1/sendTx",
            data={"tx_type": str(int(tx_type)), "tx_info": tx_info},
        )
        result = parse_response(TxHash, payload, "sendTx")
        _check_code(result.code, result.message)
        if not result.hash:
            raise ApiError("sendTx returned no transaction hash")
        logger.debug(f"Submitted tx type {int(tx_type)}: {result.hash}")
        return result.hash

    async def send_tx_batch(
        self,
        account_index: int,
        api_key_index: int,
        tx_infos: Sequence[str],
    ) -> list[str]:
        """Submit several signed transactions in one request.

        Hashes are returned in the same order as ``tx_infos``.

        Raises:
            ValidationError: If the batch is empty or larger than MAX_BATCH_SIZE
            ApiError: If the venue returns a different number of hashes, or
                an empty one
        """
        if not tx_infos:
            raise ValidationError("Transaction batch is empty")
        if len(tx_infos) > MAX_BATCH_SIZE:
            raise ValidationError(
                f"Transaction batch of {len(tx_infos)} exceeds limit of {MAX_BATCH_SIZE}"
            )

        payload = await self.client.post(
            "/api/v1/sendTxBatch",
            json={
                "account_index": account_index,
                "api_key_index": api_key_index,
                "transactions": list(tx_infos),
            },
        )
        result = parse_response(TxHashes, payload, "sendTxBatch")
        _check_code(result.code, result.message)

        if len(result.hashes) != len(tx_infos):
            raise ApiError(
                f"Batch returned {len(result.hashes)} hashes for {len(tx_infos)} transactions"
            )
        if not all(result.hashes):
            raise ApiError("sendTxBatch returned an empty transaction hash")
        logger.debug(f"Submitted batch of {len(tx_infos)} transactions")
        return result.hashes
