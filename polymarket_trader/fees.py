"""
Gas fee estimation for approval transactions.

Polygon's suggested priority fee is often too low to get included quickly,
so the estimate is padded and floored. Estimation never raises: each
failure degrades to a simpler bid and logs a warning.
"""

import logging
from typing import Optional

from .models import FeeBid

logger = logging.getLogger(__name__)

GWEI = 10**9

FEE_SAFETY_MARGIN = 1.25
DEFAULT_MIN_PRIORITY_FEE_GWEI = 30
FALLBACK_GAS_PRICE_GWEI = 100


def gwei(value: float) -> int:
    """Convert gwei to wei."""
    return int(value * GWEI)


class FeeEstimator:
    """
    Produces a FeeBid from the node's current fee market.

    Args:
        chain: Object exposing suggested_priority_fee(), latest_base_fee()
            and gas_price() coroutines (normally a ChainClient)
        min_priority_fee_gwei: Default floor for the priority fee
        margin: Multiplier applied to suggested fees
    """

    def __init__(self, chain, min_priority_fee_gwei: float = DEFAULT_MIN_PRIORITY_FEE_GWEI,
                 margin: float = FEE_SAFETY_MARGIN):
        self.chain = chain
        self.min_priority_fee_gwei = min_priority_fee_gwei
        self.margin = margin

    async def estimate(self, min_priority_fee: Optional[float] = None) -> FeeBid:
        """
        Estimate fees for one transaction.

        Args:
            min_priority_fee: Priority fee floor in gwei; overrides the
                configured default for this call

        Returns:
            EIP-1559 bid, or a legacy gas price bid if the node cannot
            answer EIP-1559 queries
        """
        floor = gwei(min_priority_fee if min_priority_fee is not None else self.min_priority_fee_gwei)

        try:
            suggested = await self.chain.suggested_priority_fee()
            base_fee = await self.chain.latest_base_fee()
        except Exception as e:
            logger.warning(f"EIP-1559 fee query failed ({e}); falling back to legacy gas price")
            return await self._legacy(floor)

        priority = max(int(suggested * self.margin), floor)

        if base_fee is not None:
            max_fee = int(2 * base_fee * self.margin) + priority
        else:
            logger.warning("Latest block has no baseFeePerGas; using 2x priority fee as max fee")
            max_fee = 2 * priority

        max_fee = max(max_fee, 2 * priority)

        bid = FeeBid(max_fee_per_gas=max_fee, max_priority_fee_per_gas=priority, source="eip1559")
        logger.debug(
            f"Fee bid: maxFee={max_fee / GWEI:.2f} gwei, "
            f"priority={priority / GWEI:.2f} gwei (suggested {suggested / GWEI:.2f})"
        )
        return bid

    async def _legacy(self, floor: int) -> FeeBid:
        try:
            price = await self.chain.gas_price()
        except Exception as e:
            logger.warning(
                f"Legacy gas price query failed ({e}); "
                f"using fixed {FALLBACK_GAS_PRICE_GWEI} gwei"
            )
            return FeeBid(gas_price=gwei(FALLBACK_GAS_PRICE_GWEI), source="fixed")

        return FeeBid(gas_price=max(int(price * self.margin), floor), source="legacy")
