"""
Core types for the trading pipeline.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional, List, Dict, Any, FrozenSet, Tuple


class Side(Enum):
    """Order side."""
    BUY = "BUY"
    SELL = "SELL"

    @classmethod
    def parse(cls, value) -> "Side":
        if isinstance(value, Side):
            return value
        return cls(str(value).upper())


class TimeInForce(Enum):
    """Order lifetime policy."""
    GTC = "GTC"  # Good Till Cancelled
    GTD = "GTD"  # Good Till Date
    FOK = "FOK"  # Fill or Kill
    FAK = "FAK"  # Fill and Kill

    @classmethod
    def parse(cls, value) -> "TimeInForce":
        if isinstance(value, TimeInForce):
            return value
        return cls(str(value).upper())


LIMIT_TIME_IN_FORCE = frozenset({TimeInForce.GTC, TimeInForce.GTD})
IMMEDIATE_TIME_IN_FORCE = frozenset({TimeInForce.FOK, TimeInForce.FAK})


class AllowanceKind(Enum):
    """How a permission is represented on chain."""
    ERC20_ALLOWANCE = "erc20_allowance"      # approve(spender, amount)
    OPERATOR_APPROVAL = "operator_approval"  # setApprovalForAll(operator, true)


class MarketKind(Enum):
    """Settlement route of a market."""
    STANDARD = "standard"
    NEG_RISK = "neg_risk"

    @classmethod
    def of(cls, neg_risk: bool) -> "MarketKind":
        return cls.NEG_RISK if neg_risk else cls.STANDARD


ALL_SIDES: FrozenSet[Side] = frozenset({Side.BUY, Side.SELL})
ALL_MARKET_KINDS: FrozenSet[MarketKind] = frozenset({MarketKind.STANDARD, MarketKind.NEG_RISK})


@dataclass(frozen=True)
class AllowanceRequirement:
    """
    One permission the wallet must grant before trading.

    ``sides`` and ``market_kinds`` describe which orders depend on it.
    """
    key: str
    label: str
    token: str
    spender: str
    kind: AllowanceKind
    purpose: str
    sides: FrozenSet[Side] = ALL_SIDES
    market_kinds: FrozenSet[MarketKind] = ALL_MARKET_KINDS

    def applies_to(self, side: Optional[Side] = None, neg_risk: Optional[bool] = None) -> bool:
        if side is not None and side not in self.sides:
            return False
        if neg_risk is not None and MarketKind.of(neg_risk) not in self.market_kinds:
            return False
        return True


@dataclass
class RequirementState:
    """Observed on-chain state of one requirement."""
    requirement: AllowanceRequirement
    granted: bool
    amount: Optional[int] = None     # ERC-20 allowance in raw units
    approved: Optional[bool] = None  # operator approval flag
    error: Optional[str] = None      # read failed; reported as missing

    def to_dict(self) -> Dict[str, Any]:
        req = self.requirement
        data = {
            "key": req.key,
            "label": req.label,
            "kind": req.kind.value,
            "token": req.token,
            "spender": req.spender,
            "granted": self.granted,
        }
        if req.kind is AllowanceKind.ERC20_ALLOWANCE:
            data["allowance"] = str(self.amount) if self.amount is not None else None
        else:
            data["approved"] = self.approved
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class AllowanceStatus:
    """Snapshot of every requirement for one owner address."""
    owner: str
    states: List[RequirementState]
    version: str = ""

    @property
    def missing(self) -> List[AllowanceRequirement]:
        return [s.requirement for s in self.states if not s.granted]

    @property
    def satisfied(self) -> bool:
        return not self.missing

    def missing_for(self, side: Optional[Side] = None, neg_risk: Optional[bool] = None) -> List[AllowanceRequirement]:
        return [r for r in self.missing if r.applies_to(side, neg_risk)]

    def state(self, key: str) -> RequirementState:
        for s in self.states:
            if s.requirement.key == key:
                return s
        raise KeyError(key)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "owner": self.owner,
            "version": self.version,
            "requirements": [s.to_dict() for s in self.states],
            "missing": [r.key for r in self.missing],
        }


@dataclass(frozen=True)
class FeeBid:
    """
    Gas fee parameters for one transaction.

    Either the EIP-1559 pair or a legacy gas_price is set.
    """
    max_fee_per_gas: Optional[int] = None
    max_priority_fee_per_gas: Optional[int] = None
    gas_price: Optional[int] = None
    source: str = "eip1559"

    @property
    def is_legacy(self) -> bool:
        return self.gas_price is not None

    def as_tx_params(self) -> Dict[str, int]:
        if self.is_legacy:
            return {"gasPrice": self.gas_price}
        return {
            "maxFeePerGas": self.max_fee_per_gas,
            "maxPriorityFeePerGas": self.max_priority_fee_per_gas,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {"source": self.source, **self.as_tx_params()}


@dataclass
class PendingTransaction:
    """A broadcast transaction; lives only in memory."""
    tx_hash: str
    nonce: int
    fee: FeeBid
    confirmations: int = 0
    requirement_key: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tx_hash": self.tx_hash,
            "nonce": self.nonce,
            "fee": self.fee.to_dict(),
            "confirmations": self.confirmations,
            "requirement": self.requirement_key,
        }


@dataclass
class GrantResult:
    """Outcome of AllowanceManager.grant_all()."""
    tx_hashes: List[str]
    summary: str
    no_op: bool
    waited_confirmations: int = 0
    transactions: List[PendingTransaction] = field(default_factory=list)
    status_before: Optional[AllowanceStatus] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "no_op": self.no_op,
            "tx_hashes": list(self.tx_hashes),
            "summary": self.summary,
            "waited_confirmations": self.waited_confirmations,
            "transactions": [t.to_dict() for t in self.transactions],
        }


@dataclass(frozen=True)
class ResolvedMarket:
    """Trading parameters for one instrument."""
    token_id: str
    tick_size: str
    neg_risk: bool = False
    outcome: Optional[str] = None
    outcome_index: Optional[int] = None
    question: Optional[str] = None
    slug: Optional[str] = None
    end_date: Optional[str] = None
    condition_id: Optional[str] = None
    token_ids: Tuple[str, ...] = ()
    input_method: str = "token_id"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "token_id": self.token_id,
            "tick_size": self.tick_size,
            "neg_risk": self.neg_risk,
            "outcome": self.outcome,
            "outcome_index": self.outcome_index,
            "question": self.question,
            "slug": self.slug,
            "end_date": self.end_date,
            "condition_id": self.condition_id,
            "token_ids": list(self.token_ids),
            "input_method": self.input_method,
        }


@dataclass(frozen=True)
class MarketRef:
    """How the caller names the instrument."""
    market_slug: Optional[str] = None
    outcome: Optional[Any] = None
    token_id: Optional[str] = None
    tick_size: Optional[str] = None
    neg_risk: Optional[bool] = None


@dataclass(frozen=True)
class LimitOrderIntent:
    """A resting order: ``size`` shares at ``price``."""
    side: Side
    market: MarketRef
    price: float
    size: float
    time_in_force: TimeInForce = TimeInForce.GTC
    expiration: Optional[int] = None  # unix seconds, GTD only

    @property
    def notional(self) -> Decimal:
        """Total cost (BUY) or proceeds (SELL) in quote currency."""
        return Decimal(str(self.price)) * Decimal(str(self.size))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "limit",
            "side": self.side.value,
            "price": self.price,
            "size": self.size,
            "time_in_force": self.time_in_force.value,
            "expiration": self.expiration,
        }


@dataclass(frozen=True)
class ImmediateOrderIntent:
    """
    An order that executes against the book right away.

    BUY: ``amount`` is quote currency (USDC) to spend.
    SELL: ``amount`` is the number of outcome shares to sell.
    """
    side: Side
    market: MarketRef
    amount: float
    time_in_force: TimeInForce = TimeInForce.FOK

    @property
    def quote_to_spend(self) -> Optional[Decimal]:
        return Decimal(str(self.amount)) if self.side is Side.BUY else None

    @property
    def shares_to_sell(self) -> Optional[Decimal]:
        return Decimal(str(self.amount)) if self.side is Side.SELL else None

    @property
    def amount_denomination(self) -> str:
        if self.side is Side.BUY:
            return "quote currency (USDC) to spend"
        return "outcome shares to sell"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "immediate",
            "side": self.side.value,
            "amount": self.amount,
            "amount_denomination": self.amount_denomination,
            "time_in_force": self.time_in_force.value,
        }


@dataclass
class SubmittedOrder:
    """Exchange acknowledgement plus what was resolved and asked for."""
    order_id: Optional[str]
    status: Optional[str]
    response: Any
    market: ResolvedMarket
    intent: Any
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "order_id": self.order_id,
            "status": self.status,
            "market": self.market.to_dict(),
            "intent": self.intent.to_dict(),
            "details": self.details,
            "response": self.response,
            "timestamp": self.timestamp,
        }


@dataclass
class RedemptionResult:
    """A redeemPositions transaction for one resolved condition."""
    condition_id: str
    neg_risk: bool
    transaction: PendingTransaction
    index_sets: Optional[List[int]] = None
    amounts: Optional[List[int]] = None

    @property
    def explorer_url(self) -> str:
        return f"https://polygonscan.com/tx/{self.transaction.tx_hash}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "condition_id": self.condition_id,
            "neg_risk": self.neg_risk,
            "index_sets": self.index_sets,
            "amounts": [str(a) for a in self.amounts] if self.amounts is not None else None,
            "tx_hash": self.transaction.tx_hash,
            "explorer_url": self.explorer_url,
            "transaction": self.transaction.to_dict(),
        }
