"""
Polymarket trading pipeline.

Checks and grants the token approvals trading needs, resolves market
slugs into order parameters, places orders on the Polymarket CLOB, and
redeems resolved positions.

Usage:
    python -m polymarket_trader check-allowances
    python -m polymarket_trader --help
"""

from .config import Settings
from .errors import (
    TradingError,
    ValidationError,
    ApprovalRequired,
    TransactionConflict,
    TransactionReverted,
    NotFound,
    MarketDataError,
    UpstreamUnavailable,
    OrderRejected,
    SigningDisabled,
    NotRedeemable,
)
from .models import (
    Side,
    TimeInForce,
    MarketRef,
    LimitOrderIntent,
    ImmediateOrderIntent,
    ResolvedMarket,
    SubmittedOrder,
    AllowanceStatus,
    GrantResult,
    FeeBid,
    RedemptionResult,
)
from .session import TradingSession

__version__ = "1.0.0"
__all__ = [
    "Settings",
    "TradingSession",
    "TradingError",
    "ValidationError",
    "ApprovalRequired",
    "TransactionConflict",
    "TransactionReverted",
    "NotFound",
    "MarketDataError",
    "UpstreamUnavailable",
    "OrderRejected",
    "SigningDisabled",
    "NotRedeemable",
    "Side",
    "TimeInForce",
    "MarketRef",
    "LimitOrderIntent",
    "ImmediateOrderIntent",
    "ResolvedMarket",
    "SubmittedOrder",
    "AllowanceStatus",
    "GrantResult",
    "FeeBid",
    "RedemptionResult",
]
