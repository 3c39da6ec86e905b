"""Confirmation polling for submitted transactions.

State machine:
    POLLING -> CONFIRMED  (record returned)
    POLLING -> FAILED     (TransactionError raised)
    POLLING -> TIMED_OUT  (TransactionTimeoutError raised)

Lookup errors while polling, including not-found, are treated as
propagation lag and retried until the deadline.
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Awaitable, Callable

from lighter_tx.api.models import TransactionRecord, TxStatus
from lighter_tx.exceptions import NotFoundError, TransactionError, TransactionTimeoutError

logger = logging.getLogger(__name__)

DEFAULT_MAX_WAIT_MS = 60_000
DEFAULT_POLL_INTERVAL_MS = 2_000


class PollState(str, Enum):
    POLLING = "polling"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


class TransactionPoller:
    """Polls a transaction lookup until the transaction is terminal."""

    def __init__(self, lookup: Callable[[str], Awaitable[TransactionRecord]]):
        """Initialize the poller.

        Args:
            lookup: async function returning the record for a hash
        """
        self._lookup = lookup
        self.state = PollState.POLLING
        self.polls = 0

    async def wait(
        self,
        tx_hash: str,
        max_wait_ms: int = DEFAULT_MAX_WAIT_MS,
        poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
    ) -> TransactionRecord:
        """Wait for ``tx_hash`` to be confirmed.

        Args:
            tx_hash: Transaction hash
            max_wait_ms: Overall deadline in milliseconds
            poll_interval_ms: Delay between lookups in milliseconds

        Returns:
            The confirmed transaction record

        Raises:
            TransactionError: The ledger reported the transaction as failed
            TransactionTimeoutError: No terminal status before the deadline
        """
        self.state = PollState.POLLING
        self.polls = 0
        short_hash = tx_hash[:16]
        deadline = time.monotonic() + max_wait_ms / 1000

        while True:
            self.polls += 1
            try:
                record = await self._lookup(tx_hash)
            except NotFoundError:
                logger.debug(f"Transaction {short_hash} not visible yet")
                record = None
            except Exception as e:
                logger.warning(f"Lookup for transaction {short_hash} failed, retrying: {e}")
                record = None

            if record is not None:
                if record.status is TxStatus.CONFIRMED:
                    self.state = PollState.CONFIRMED
                    logger.info(f"Transaction {short_hash} confirmed")
                    return record
                if record.status is TxStatus.FAILED:
                    self.state = PollState.FAILED
                    logger.warning(f"Transaction {short_hash} failed")
                    raise TransactionError(
                        f"Transaction {tx_hash} failed with status: {record.status.value}",
                        record=record,
                    )

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            await asyncio.sleep(min(poll_interval_ms / 1000, remaining))
            if time.monotonic() >= deadline:
                break

        self.state = PollState.TIMED_OUT
        raise TransactionTimeoutError(
            f"Transaction {tx_hash} did not confirm within {max_wait_ms}ms", tx_hash=tx_hash
        )
