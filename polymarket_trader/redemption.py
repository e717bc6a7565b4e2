"""
Redemption of resolved positions.

Once a market resolves, winning outcome tokens can be swapped back for
USDC. Standard markets redeem through the Conditional Tokens contract with
the winning index sets. Negative-risk markets redeem through the NegRisk
Adapter with an amount per outcome index, which needs the CTF operator
approval for the adapter.

The transaction goes through the same fee estimate and nonce sequencing as
approval grants.
"""

import logging
import re
from typing import List, Optional, Sequence

from .allowance_manager import AllowanceManager
from .errors import NotRedeemable, ValidationError
from .fees import FeeEstimator
from .models import RedemptionResult
from .nonces import NonceSequencer

logger = logging.getLogger(__name__)

CONDITION_ID_PATTERN = re.compile(r"^0x[0-9a-f]{64}$")

# CTF operator approval the NegRisk Adapter needs to burn outcome tokens
NEG_RISK_REDEMPTION_APPROVAL = "CTF_APPROVAL_FOR_NEG_RISK_ADAPTER"

DEFAULT_REDEEM_CONFIRMATIONS = 1


def normalize_condition_id(condition_id: Optional[str]) -> str:
    """0x-prefixed lowercase bytes32 hex, or ValidationError."""
    value = (condition_id or "").strip().lower()
    if value and not value.startswith("0x"):
        value = "0x" + value
    if not CONDITION_ID_PATTERN.match(value):
        raise ValidationError(
            f"condition_id must be a 32-byte hex string, got {condition_id!r}",
            context={"condition_id": condition_id},
        )
    return value


def winning_index_sets(numerators: Sequence[int]) -> List[int]:
    """Index set ``1 << i`` for every outcome ``i`` with a non-zero payout."""
    return [1 << index for index, numerator in enumerate(numerators) if numerator > 0]


class PositionRedeemer:
    """
    Claims USDC for positions in resolved markets.

    Args:
        chain: ChainClient
        fees: FeeEstimator
        nonces: NonceSequencer for the signing account
        allowances: AllowanceManager; supplies the owner and the adapter
            approval check
    """

    def __init__(self, chain, fees: FeeEstimator, nonces: NonceSequencer, allowances: AllowanceManager):
        self.chain = chain
        self.fees = fees
        self.nonces = nonces
        self.allowances = allowances

    async def redeem(
        self,
        condition_id: str,
        token_id: Optional[str] = None,
        outcome_index: Optional[int] = None,
        neg_risk: bool = False,
        wait_confirmations: int = DEFAULT_REDEEM_CONFIRMATIONS,
        min_priority_fee: Optional[float] = None,
    ) -> RedemptionResult:
        """
        Redeem the positions held for one condition.

        Args:
            condition_id: Market condition id (bytes32 hex)
            token_id: Outcome token held; required for negative-risk markets
            outcome_index: 0 or 1, the outcome ``token_id`` represents;
                required for negative-risk markets
            neg_risk: Redeem through the NegRisk Adapter
            wait_confirmations: Confirmations to wait for (default 1)
            min_priority_fee: Priority fee floor in gwei for this run

        Raises:
            ValidationError: Bad arguments, or a funder other than the signer
            NotRedeemable: The condition is unresolved or there is nothing to redeem
            ApprovalRequired: Negative-risk redemption without the adapter approval
            TransactionReverted: The redemption reverted on chain
        """
        condition = normalize_condition_id(condition_id)
        if outcome_index not in (None, 0, 1):
            raise ValidationError(f"outcome_index must be 0 or 1, got {outcome_index!r}")
        if neg_risk and (not token_id or outcome_index is None):
            raise ValidationError("Negative-risk redemption needs token_id and outcome_index")
        if wait_confirmations < 0:
            raise ValidationError("wait_confirmations must be >= 0")

        owner = self.allowances.require_sender_is_owner()

        balance = None
        if token_id:
            balance = await self.chain.ctf_balance(owner, token_id)
            if balance == 0:
                raise NotRedeemable(
                    f"No outcome tokens for {token_id}; the position may already be redeemed",
                    condition_id=condition,
                    context={"token_id": token_id},
                )
            logger.info(f"Token {token_id} balance: {balance}")

        if await self.chain.payout_denominator(condition) == 0:
            raise NotRedeemable(f"Condition {condition} has not been resolved yet", condition_id=condition)

        index_sets = None
        amounts = None
        if neg_risk:
            await self.allowances.assert_granted([NEG_RISK_REDEMPTION_APPROVAL])
            amounts = [0, 0]
            amounts[outcome_index] = balance
        else:
            index_sets = winning_index_sets(await self.chain.payout_numerators(condition))
            if not index_sets:
                raise NotRedeemable(f"No winning outcome for condition {condition}", condition_id=condition)

        fee = await self.fees.estimate(min_priority_fee)

        async def broadcast(nonce, bid):
            return await self.chain.send_redemption(condition, nonce, bid, index_sets=index_sets, amounts=amounts)

        route = "NegRisk Adapter" if neg_risk else "CTF"
        logger.info(f"Redeeming {condition} through {route} (index sets {index_sets}, amounts {amounts})")

        self.nonces.reset()
        try:
            pending = await self.nonces.submit(broadcast, fee, wait_confirmations=wait_confirmations)
        except Exception:
            self.nonces.reset()
            raise

        logger.info(f"Redemption sent: {pending.tx_hash}")
        return RedemptionResult(
            condition_id=condition,
            neg_risk=neg_risk,
            transaction=pending,
            index_sets=index_sets,
            amounts=amounts,
        )
