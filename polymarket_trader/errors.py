"""
Error taxonomy for the trading pipeline.

Every error carries a message and a context dict. Callers branch on the
class (or on ``code`` once serialized) rather than on message text.
"""

from typing import Optional, Dict, Any


class TradingError(Exception):
    """Base class for all pipeline errors."""

    code = "TRADING_ERROR"

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": True,
            "code": self.code,
            "message": self.message,
            "context": self.context,
        }


class ValidationError(TradingError):
    """Malformed caller input. Never retried."""

    code = "VALIDATION_ERROR"


class NotFound(TradingError):
    """A market or order lookup returned nothing."""

    code = "NOT_FOUND"

    def __init__(self, message: str, identifier: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.identifier = identifier
        self.context.setdefault("identifier", identifier)


class MarketDataError(TradingError):
    """Market metadata was found but could not be interpreted."""

    code = "MARKET_DATA_ERROR"

    def __init__(self, message: str, slug: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.slug = slug
        self.context.setdefault("slug", slug)


class UpstreamUnavailable(TradingError):
    """RPC, exchange or market-data API network/5xx failure."""

    code = "UPSTREAM_UNAVAILABLE"

    def __init__(self, message: str, service: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.service = service
        self.context.setdefault("service", service)


class OrderRejected(TradingError):
    """The exchange refused the order (4xx)."""

    code = "ORDER_REJECTED"

    def __init__(self, message: str, status_code: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.status_code = status_code
        self.context.setdefault("status_code", status_code)


class TransactionConflict(TradingError):
    """Nonce or fee-replacement rejection that survived the single retry."""

    code = "TRANSACTION_CONFLICT"

    def __init__(self, message: str, nonce: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.nonce = nonce
        self.context.setdefault("nonce", nonce)


class TransactionReverted(TradingError):
    """A transaction was mined with status 0."""

    code = "TRANSACTION_REVERTED"

    def __init__(self, message: str, tx_hash: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.tx_hash = tx_hash
        self.context.setdefault("tx_hash", tx_hash)


class SigningDisabled(TradingError):
    """A state-changing call was made without a configured private key."""

    code = "SIGNING_DISABLED"


class NotRedeemable(TradingError):
    """The condition is not resolved yet or there is nothing to redeem."""

    code = "NOT_REDEEMABLE"

    def __init__(self, message: str, condition_id: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.condition_id = condition_id
        self.context.setdefault("condition_id", condition_id)


class ApprovalRequired(TradingError):
    """
    Token approvals are missing for a state-changing operation.

    This is not fatal: the expected reaction is to run the grant operation
    and retry. ``status`` is the full AllowanceStatus that triggered it.
    """

    code = "APPROVAL_REQUIRED"

    NEXT_STEP = {
        "command": "grant-allowances",
        "name": "Grant Allowances",
        "description": "Grant USDC and CTF approvals for Polymarket (revocable anytime).",
    }

    def __init__(self, status, rationale: str, missing=None):
        self.status = status
        self.rationale = rationale
        self.missing = list(missing if missing is not None else status.missing)
        message = "\n\n".join([
            "Token approvals required before proceeding.",
            rationale,
            "Run 'grant-allowances' to grant the missing approvals.",
        ])
        super().__init__(message, context={"missing": [r.key for r in self.missing]})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "approval_required": True,
            "code": self.code,
            "message": self.message,
            "missing": [r.key for r in self.missing],
            "details": self.status.to_dict(),
            "next_step": dict(self.NEXT_STEP),
        }
