"""
Order submission.

Every state-changing order call follows the same protocol:
validate the intent, resolve the market, check the allowances the order
depends on, then sign and post through the exchange client.
"""

import logging
import time
from decimal import Decimal
from typing import Any, Dict, Optional

from py_clob_client.clob_types import (
    MarketOrderArgs,
    OpenOrderParams,
    OrderArgs,
    OrderType,
    PartialCreateOrderOptions,
)
from py_clob_client.order_builder.constants import BUY, SELL

from .allowance_manager import AllowanceManager
from .client import TradingClient
from .errors import NotFound, OrderRejected, SigningDisabled, ValidationError
from .market_resolver import MarketResolver
from .models import (
    IMMEDIATE_TIME_IN_FORCE,
    LIMIT_TIME_IN_FORCE,
    ImmediateOrderIntent,
    LimitOrderIntent,
    ResolvedMarket,
    Side,
    SubmittedOrder,
    TimeInForce,
)

logger = logging.getLogger(__name__)

CLOB_SIDE = {Side.BUY: BUY, Side.SELL: SELL}


def extract_order_id(response: Any) -> Optional[str]:
    """Pull the order id out of a post_order response."""
    if isinstance(response, dict):
        for key in ("orderID", "orderId", "order_id", "id"):
            if response.get(key):
                return str(response[key])
    return None


def validate_limit_intent(intent: LimitOrderIntent):
    """
    Check a limit order before any network call.

    Raises:
        ValidationError: Describing the first problem found
    """
    if not 0 < intent.price < 1:
        raise ValidationError(f"price must be between 0 and 1 (exclusive), got {intent.price}")
    if intent.size <= 0:
        raise ValidationError(f"size must be > 0, got {intent.size}")
    if intent.time_in_force not in LIMIT_TIME_IN_FORCE:
        raise ValidationError(f"Limit orders accept GTC or GTD, got {intent.time_in_force.value}")
    if intent.time_in_force is TimeInForce.GTD:
        if not intent.expiration:
            raise ValidationError("GTD orders require an expiration (unix seconds)")
        if intent.expiration <= int(time.time()):
            raise ValidationError(f"expiration {intent.expiration} is in the past")
    elif intent.expiration:
        raise ValidationError("expiration is only valid for GTD orders")


def validate_immediate_intent(intent: ImmediateOrderIntent):
    if intent.amount <= 0:
        raise ValidationError(f"amount must be > 0, got {intent.amount}")
    if intent.time_in_force not in IMMEDIATE_TIME_IN_FORCE:
        raise ValidationError(f"Immediate orders accept FOK or FAK, got {intent.time_in_force.value}")


def check_price_on_tick(price: float, tick_size: str):
    """Price must be a multiple of the tick, within [tick, 1 - tick]."""
    tick = Decimal(tick_size)
    value = Decimal(str(price))
    if value < tick or value > 1 - tick:
        raise ValidationError(f"price {price} outside [{tick}, {1 - tick}] for tick size {tick_size}")
    if value % tick != 0:
        raise ValidationError(f"price {price} is not a multiple of tick size {tick_size}")


class OrderSubmitter:
    """
    Places and cancels orders for the configured account.

    Args:
        client: Connected (or connectable) TradingClient
        resolver: MarketResolver for market references
        allowances: AllowanceManager guarding state-changing calls
    """

    def __init__(self, client: TradingClient, resolver: MarketResolver, allowances: AllowanceManager):
        self.client = client
        self.resolver = resolver
        self.allowances = allowances

    def _require_signing(self):
        if not self.client.settings.can_sign:
            raise SigningDisabled("No private key configured; order placement is disabled")

    def _options(self, market: ResolvedMarket) -> PartialCreateOrderOptions:
        return PartialCreateOrderOptions(tick_size=market.tick_size, neg_risk=market.neg_risk)

    def _wrap(self, response: Any, market: ResolvedMarket, intent, details: Dict[str, Any]) -> SubmittedOrder:
        if isinstance(response, dict) and response.get("success") is False:
            raise OrderRejected(
                f"Exchange rejected order: {response.get('errorMsg') or response}",
                context={"response": response},
            )

        order = SubmittedOrder(
            order_id=extract_order_id(response),
            status=response.get("status") if isinstance(response, dict) else None,
            response=response,
            market=market,
            intent=intent,
            details=details,
        )
        logger.info(f"Order {order.order_id} accepted (status={order.status})")
        return order

    @staticmethod
    def _base_details(market: ResolvedMarket, side: Side, time_in_force: TimeInForce) -> Dict[str, Any]:
        return {
            "outcome": market.outcome or "Unknown (using direct token_id)",
            "token_id": market.token_id,
            "side": side.value,
            "order_type": time_in_force.value,
            "tick_size": market.tick_size,
            "neg_risk": market.neg_risk,
            "input_method": "Direct token_id" if market.input_method == "token_id" else "Market slug + outcome",
        }

    async def submit_limit_order(self, intent: LimitOrderIntent, force: bool = False) -> SubmittedOrder:
        """
        Place a GTC/GTD limit order.

        Args:
            intent: What to trade
            force: Skip the allowance precondition

        Raises:
            ValidationError, ApprovalRequired, OrderRejected, UpstreamUnavailable
        """
        validate_limit_intent(intent)
        self._require_signing()

        market = await self.resolver.resolve_ref(intent.market)
        check_price_on_tick(intent.price, market.tick_size)

        if force:
            logger.warning("Skipping allowance check (force=True)")
        else:
            await self.allowances.assert_satisfied(side=intent.side, neg_risk=market.neg_risk)

        order_args = OrderArgs(
            token_id=market.token_id,
            price=intent.price,
            size=intent.size,
            side=CLOB_SIDE[intent.side],
            expiration=intent.expiration or 0,
        )

        logger.info(
            f"Placing {intent.time_in_force.value} {intent.side.value} "
            f"{intent.size} @ {intent.price} on {market.token_id[:16]}..."
        )
        signed = await self.client.call("create_order", order_args, self._options(market))
        response = await self.client.call("post_order", signed, getattr(OrderType, intent.time_in_force.value))

        details = self._base_details(market, intent.side, intent.time_in_force)
        details.update({
            "price": intent.price,
            "size": intent.size,
            "expiration": intent.expiration,
            "notional": f"{intent.notional:.4f}",
        })
        return self._wrap(response, market, intent, details)

    async def submit_immediate_order(self, intent: ImmediateOrderIntent, force: bool = False) -> SubmittedOrder:
        """
        Place a FOK/FAK order against the book.

        BUY amount is USDC to spend; SELL amount is shares to sell.
        """
        validate_immediate_intent(intent)
        self._require_signing()

        market = await self.resolver.resolve_ref(intent.market)

        if force:
            logger.warning("Skipping allowance check (force=True)")
        else:
            await self.allowances.assert_satisfied(side=intent.side, neg_risk=market.neg_risk)

        order_type = getattr(OrderType, intent.time_in_force.value)
        order_args = MarketOrderArgs(
            token_id=market.token_id,
            amount=intent.amount,
            side=CLOB_SIDE[intent.side],
            order_type=order_type,
        )

        logger.info(
            f"Placing {intent.time_in_force.value} {intent.side.value} for "
            f"{intent.amount} {intent.amount_denomination} on {market.token_id[:16]}..."
        )
        signed = await self.client.call("create_market_order", order_args, self._options(market))
        response = await self.client.call("post_order", signed, order_type)

        details = self._base_details(market, intent.side, intent.time_in_force)
        details.update({
            "amount": intent.amount,
            "amount_denomination": intent.amount_denomination,
        })
        return self._wrap(response, market, intent, details)

    # === Cancellation ===

    async def cancel(self, order_id: str) -> Any:
        """Cancel one order by id."""
        if not order_id:
            raise ValidationError("order_id is required")
        self._require_signing()
        await self.allowances.assert_satisfied()
        logger.info(f"Cancelling order {order_id}")
        return await self.client.call("cancel", order_id)

    async def cancel_all(self) -> Any:
        self._require_signing()
        await self.allowances.assert_satisfied()
        logger.info("Cancelling all open orders")
        return await self.client.call("cancel_all")

    async def cancel_market(self, token_id: str) -> Any:
        """Cancel every open order on one token."""
        if not token_id:
            raise ValidationError("token_id is required")
        self._require_signing()
        await self.allowances.assert_satisfied()
        logger.info(f"Cancelling open orders on {token_id[:16]}...")
        return await self.client.call("cancel_market_orders", market="", asset_id=token_id)

    # === Reads ===

    async def get_open_orders(self, market: Optional[str] = None, token_id: Optional[str] = None) -> Any:
        """Open orders, optionally filtered by condition id or token id."""
        self._require_signing()
        params = OpenOrderParams(market=market, asset_id=token_id)
        return await self.client.call("get_orders", params)

    async def get_order(self, order_id: str) -> Any:
        if not order_id:
            raise ValidationError("order_id is required")
        self._require_signing()
        order = await self.client.call("get_order", order_id)
        if not order:
            raise NotFound(f"Order not found: {order_id}", identifier=order_id)
        return order
