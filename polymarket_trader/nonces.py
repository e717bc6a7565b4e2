"""
Nonce sequencing for the signing account.

The counter is seeded from the node's pending transaction count and then
advanced in memory, so several transactions can be broadcast back to back
without waiting for each to be mined. Callers reset it at the start of each
batch and after a failed broadcast, so a batch never starts past the
node's count. A conflicting nonce (another process sent a transaction,
or a stale pending count) resets the counter and the broadcast is retried
exactly once; later nonces in the batch continue from the resynced value.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from .errors import TradingError, TransactionConflict
from .models import FeeBid, PendingTransaction

logger = logging.getLogger(__name__)

Broadcast = Callable[[int, FeeBid], Awaitable[str]]

CONFLICT_MARKERS = (
    "nonce",
    "replacement transaction underpriced",
    "replace",
    "already known",
)


def is_nonce_conflict(error: Exception) -> bool:
    """True if a node rejection means the nonce is used or being replaced."""
    if isinstance(error, TradingError):
        return False
    message = str(error).lower()
    return any(marker in message for marker in CONFLICT_MARKERS)


class NonceSequencer:
    """
    Hands out strictly increasing nonces for one sender.

    Args:
        chain: Object exposing pending_nonce(address) and
            wait_for_confirmations(tx_hash, n) coroutines
        address: Sender address; None lets the chain use its own account
    """

    def __init__(self, chain, address: Optional[str] = None):
        self.chain = chain
        self.address = address
        self._next: Optional[int] = None
        self._lock = asyncio.Lock()

    async def next(self) -> int:
        """Reserve the next nonce."""
        async with self._lock:
            if self._next is None:
                self._next = await self.chain.pending_nonce(self.address)
                logger.debug(f"Nonce counter seeded at {self._next}")
            nonce = self._next
            self._next += 1
            return nonce

    def reset(self):
        """Forget the counter; the next call re-reads the pending count."""
        self._next = None

    async def submit(
        self,
        broadcast: Broadcast,
        fee: FeeBid,
        wait_confirmations: int = 0,
        nonce: Optional[int] = None,
    ) -> PendingTransaction:
        """
        Broadcast with one retry on nonce conflict.

        Args:
            broadcast: Coroutine function taking (nonce, fee) and returning
                the transaction hash
            fee: Fee bid for the transaction
            wait_confirmations: Confirmations to wait for; 0 returns as soon
                as the node accepts the transaction
            nonce: Pre-assigned nonce; reserved from the counter if None

        Raises:
            TransactionConflict: The retry hit a conflict too
        """
        if nonce is None:
            nonce = await self.next()

        try:
            tx_hash = await broadcast(nonce, fee)
        except Exception as e:
            if not is_nonce_conflict(e):
                raise
            logger.warning(f"Nonce {nonce} rejected ({e}); resyncing from pending count and retrying once")
            self.reset()
            nonce = await self.next()
            try:
                tx_hash = await broadcast(nonce, fee)
            except Exception as retry_error:
                if is_nonce_conflict(retry_error):
                    raise TransactionConflict(
                        f"Transaction rejected twice for nonce conflict: {retry_error}",
                        nonce=nonce,
                    ) from retry_error
                raise

        logger.info(f"Broadcast tx {tx_hash} (nonce {nonce})")

        if wait_confirmations > 0:
            logger.info(f"Waiting for {wait_confirmations} confirmation(s) of {tx_hash}...")
            tx_hash = await self.chain.wait_for_confirmations(tx_hash, wait_confirmations)

        return PendingTransaction(
            tx_hash=tx_hash,
            nonce=nonce,
            fee=fee,
            confirmations=wait_confirmations,
        )

    async def send_with_retry(
        self,
        broadcast: Broadcast,
        fee: FeeBid,
        wait_confirmations: int = 0,
        nonce: Optional[int] = None,
    ) -> str:
        """Like submit() but returns only the transaction hash."""
        pending = await self.submit(broadcast, fee, wait_confirmations=wait_confirmations, nonce=nonce)
        return pending.tx_hash
