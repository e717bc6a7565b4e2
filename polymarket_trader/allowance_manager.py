"""
Token Allowance Manager for Polymarket Trading.

Before trading on Polymarket, the owner wallet must approve token spending
for the exchange contracts. This module reads those approvals, refuses
state-changing calls while they are missing, and grants them.

Required approvals (see contracts.ALLOWANCE_REQUIREMENTS):
- USDC allowances: CTF, Exchange, NegRisk Exchange, NegRisk Adapter
- Conditional Tokens (CTF) operator approvals: Exchange, NegRisk Exchange,
  NegRisk Adapter
"""

import asyncio
import logging
from typing import Iterable, List, Optional, Sequence

from .contracts import ALLOWANCE_REQUIREMENTS, MAX_UINT256, REQUIREMENTS_VERSION, contract_name
from .errors import ApprovalRequired, TradingError, ValidationError
from .fees import FeeEstimator
from .models import (
    AllowanceKind,
    AllowanceRequirement,
    AllowanceStatus,
    GrantResult,
    RequirementState,
    Side,
)
from .nonces import NonceSequencer

logger = logging.getLogger(__name__)

NO_OP_SUMMARY = "No transactions needed; required approvals are already in place."


class AllowanceManager:
    """
    Checks and grants the allowance requirement set for one owner.

    Args:
        chain: ChainClient (or anything with the same read/send coroutines)
        fees: FeeEstimator used for grant transactions
        nonces: NonceSequencer for the signing account
        owner: Address whose allowances are checked (funder if configured)
        requirements: Requirement table; defaults to the Polygon set
    """

    def __init__(
        self,
        chain,
        fees: FeeEstimator,
        nonces: NonceSequencer,
        owner: Optional[str],
        requirements: Sequence[AllowanceRequirement] = ALLOWANCE_REQUIREMENTS,
        version: str = REQUIREMENTS_VERSION,
    ):
        self.chain = chain
        self.fees = fees
        self.nonces = nonces
        self.owner = owner
        self.requirements = tuple(requirements)
        self.version = version

    @staticmethod
    def rationale(requirements: Iterable[AllowanceRequirement] = ALLOWANCE_REQUIREMENTS) -> str:
        """Human-readable explanation of what each permission is for."""
        lines = ["Trading on Polymarket requires granting limited permissions:"]
        for req in requirements:
            lines.append(f"- {req.label}: {req.purpose}.")
        lines.append(
            "Standard ERC20/ERC1155 approvals set to MaxUint. Revocable anytime in your wallet."
        )
        return "\n".join(lines)

    def _require_owner(self) -> str:
        if not self.owner:
            raise ValidationError(
                "No owner address configured: set PRIVATE_KEY or FUNDER_ADDRESS"
            )
        return self.owner

    async def _read_state(self, req: AllowanceRequirement, owner: str) -> RequirementState:
        try:
            if req.kind is AllowanceKind.ERC20_ALLOWANCE:
                amount = await self.chain.read_allowance(req.token, owner, req.spender)
                return RequirementState(requirement=req, granted=amount > 0, amount=amount)
            approved = await self.chain.read_operator_approval(req.token, owner, req.spender)
            return RequirementState(requirement=req, granted=bool(approved), approved=bool(approved))
        except Exception as e:
            # Unreadable is reported as missing, never as granted
            logger.warning(f"Could not read {req.label} for {owner}: {e}")
            return RequirementState(requirement=req, granted=False, error=str(e))

    async def check(self) -> AllowanceStatus:
        """
        Read every requirement for the owner address.

        Reads run concurrently. A failed read marks that requirement as
        missing and records the error; it does not fail the whole check.
        """
        owner = self._require_owner()
        states = await asyncio.gather(*(self._read_state(req, owner) for req in self.requirements))
        status = AllowanceStatus(owner=owner, states=list(states), version=self.version)

        if status.satisfied:
            logger.debug(f"All {len(states)} approvals in place for {owner}")
        else:
            logger.info(f"Missing approvals for {owner}: {', '.join(r.label for r in status.missing)}")
        return status

    async def assert_satisfied(self, side: Optional[Side] = None, neg_risk: Optional[bool] = None) -> AllowanceStatus:
        """
        Raise ApprovalRequired if approvals needed for the given order shape
        are missing.

        Args:
            side: Order side, or None for both
            neg_risk: Market kind, or None for both

        Returns:
            The status that was checked
        """
        status = await self.check()
        missing = status.missing_for(side, neg_risk)
        if missing:
            raise ApprovalRequired(status, self.rationale(self.requirements), missing=missing)
        return status

    async def assert_granted(self, keys: Iterable[str]) -> AllowanceStatus:
        """Raise ApprovalRequired unless every named requirement is granted."""
        wanted = set(keys)
        status = await self.check()
        missing = [r for r in status.missing if r.key in wanted]
        if missing:
            raise ApprovalRequired(status, self.rationale(self.requirements), missing=missing)
        return status

    def _select(self, selection: Optional[Iterable[str]]) -> List[AllowanceRequirement]:
        if selection is None:
            return list(self.requirements)

        keys = list(selection)
        known = {r.key: r for r in self.requirements}
        unknown = [k for k in keys if k not in known]
        if unknown:
            raise ValidationError(
                f"Unknown allowance requirement(s): {', '.join(unknown)}",
                context={"known": sorted(known)},
            )
        # Table order, not caller order
        return [r for r in self.requirements if r.key in keys]

    def _broadcaster(self, req: AllowanceRequirement, amount: int):
        async def broadcast(nonce, fee):
            return await self.chain.send_grant(req, nonce, fee, amount)
        return broadcast

    def require_sender_is_owner(self) -> str:
        """
        The signer address, provided it is also the owner.

        Raises:
            SigningDisabled: No private key
            ValidationError: A funder other than the signer is configured
        """
        sender = self.chain.sender_address
        if self.owner and sender.lower() != self.owner.lower():
            raise ValidationError(
                f"Funder {self.owner} holds the funds but transactions would be sent from signer "
                f"{sender}. On-chain calls act on the sending address, so a proxy wallet must "
                f"grant approvals and redeem through the proxy itself (e.g. from polymarket.com).",
                context={"owner": self.owner, "signer": sender},
            )
        return sender

    async def grant_all(
        self,
        selection: Optional[Iterable[str]] = None,
        wait_confirmations: int = 0,
        force: bool = False,
        min_priority_fee: Optional[float] = None,
        amount: Optional[int] = None,
    ) -> GrantResult:
        """
        Grant missing approvals.

        Args:
            selection: Requirement keys to consider (default all)
            wait_confirmations: Confirmations to wait for per transaction
            force: Re-grant even if already granted
            min_priority_fee: Priority fee floor in gwei for this run
            amount: Exact ERC-20 allowance in raw units (default unlimited)

        Returns:
            GrantResult; no_op is True when nothing needed doing

        Raises:
            ValidationError: Bad arguments, or the owner is not the signer
        """
        selected = self._select(selection)
        if wait_confirmations < 0:
            raise ValidationError("wait_confirmations must be >= 0")
        if amount is not None and amount <= 0:
            raise ValidationError("amount must be > 0")

        self.require_sender_is_owner()

        status = await self.check()
        targets = [r for r in selected if force or not status.state(r.key).granted]

        if not targets:
            logger.info(NO_OP_SUMMARY)
            return GrantResult(tx_hashes=[], summary=NO_OP_SUMMARY, no_op=True, status_before=status)

        fee = await self.fees.estimate(min_priority_fee)
        grant_amount = amount if amount is not None else MAX_UINT256

        # Each batch starts from the node's pending count
        self.nonces.reset()

        transactions = []
        try:
            for req in targets:
                logger.info(f"Approving {req.label} ({contract_name(req.spender)})...")
                pending = await self.nonces.submit(
                    self._broadcaster(req, grant_amount),
                    fee,
                    wait_confirmations=wait_confirmations,
                )
                pending.requirement_key = req.key
                transactions.append(pending)
                logger.info(f"Approved {req.label}: {pending.tx_hash} (nonce {pending.nonce})")
        except Exception as e:
            # Nonces handed out after the failure were never broadcast
            self.nonces.reset()
            if isinstance(e, TradingError):
                e.context.setdefault("sent_tx_hashes", [t.tx_hash for t in transactions])
            raise

        count = len(transactions)
        if wait_confirmations > 0:
            summary = f"{count} approval(s) confirmed. Revocable anytime in your wallet."
        else:
            summary = f"{count} approval(s) submitted. Monitor in your wallet."

        return GrantResult(
            tx_hashes=[t.tx_hash for t in transactions],
            summary=summary,
            no_op=False,
            waited_confirmations=wait_confirmations,
            transactions=transactions,
            status_before=status,
        )
