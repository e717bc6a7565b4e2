"""
Account-level reads: the exchange's balance/allowance mirror, trade
history, on-chain wallet balances, and positions from the data API
(summarized together as a portfolio).
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from py_clob_client.clob_types import AssetType, BalanceAllowanceParams, TradeParams

from .allowance_manager import AllowanceManager
from .client import TradingClient
from .contracts import USDC_DECIMALS
from .errors import TradingError, ValidationError

logger = logging.getLogger(__name__)

ASSET_TYPES = {
    "COLLATERAL": AssetType.COLLATERAL,
    "CONDITIONAL": AssetType.CONDITIONAL,
}


def _number(value) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def summarize_position(raw: Dict[str, Any]) -> Dict[str, Any]:
    """The fields of a data API position that matter for trading and redemption."""
    return {
        "token_id": raw.get("asset"),
        "condition_id": raw.get("conditionId"),
        "title": raw.get("title"),
        "slug": raw.get("slug"),
        "outcome": raw.get("outcome"),
        "outcome_index": raw.get("outcomeIndex"),
        "size": _number(raw.get("size")),
        "avg_price": _number(raw.get("avgPrice")),
        "cur_price": _number(raw.get("curPrice")),
        "current_value": _number(raw.get("currentValue")),
        "cash_pnl": _number(raw.get("cashPnl")),
        "percent_pnl": _number(raw.get("percentPnl")),
        "redeemable": bool(raw.get("redeemable", False)),
        "neg_risk": bool(raw.get("negativeRisk", False)),
    }


def balance_params(asset_type: str, token_id: Optional[str], signature_type: int) -> BalanceAllowanceParams:
    """Validate and build BalanceAllowanceParams."""
    key = (asset_type or "").upper()
    if key not in ASSET_TYPES:
        raise ValidationError(f"asset_type must be COLLATERAL or CONDITIONAL, got {asset_type!r}")
    if key == "CONDITIONAL" and not token_id:
        raise ValidationError("token_id is required for CONDITIONAL balances")
    return BalanceAllowanceParams(
        asset_type=ASSET_TYPES[key],
        token_id=token_id or None,
        signature_type=signature_type,
    )


class AccountService:
    """
    Balance and trade history for the configured account.

    Args:
        client: TradingClient
        allowances: AllowanceManager; updating the exchange's mirror
            requires the on-chain approvals to be in place
        chain: ChainClient for wallet balances
        market_data: MarketDataClient for positions
    """

    def __init__(self, client: TradingClient, allowances: AllowanceManager, chain=None, market_data=None):
        self.client = client
        self.allowances = allowances
        self.chain = chain
        self.market_data = market_data

    async def get_balance_allowance(self, asset_type: str = "COLLATERAL", token_id: Optional[str] = None) -> Any:
        """The exchange's view of balance and allowance for one asset."""
        params = balance_params(asset_type, token_id, self.client.settings.effective_signature_type)
        return await self.client.call("get_balance_allowance", params)

    async def update_balance_allowance(self, asset_type: str = "COLLATERAL", token_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Ask the exchange to refresh its balance/allowance mirror from chain.

        Raises:
            ApprovalRequired: On-chain approvals are missing
        """
        params = balance_params(asset_type, token_id, self.client.settings.effective_signature_type)
        await self.allowances.assert_satisfied()
        await self.client.call("update_balance_allowance", params)
        logger.info(f"Balance allowance updated for {params.asset_type}")
        return {"success": True, "message": "Balance allowance updated successfully"}

    async def get_trade_history(self, market: Optional[str] = None, maker_address: Optional[str] = None) -> Any:
        params = TradeParams(market=market, maker_address=maker_address)
        return await self.client.call("get_trades", params)

    async def wallet_balances(self, address: Optional[str] = None) -> Dict[str, Any]:
        """
        On-chain USDC and gas token balances.

        Args:
            address: Defaults to the allowance owner (funder if configured)
        """
        if self.chain is None:
            raise ValidationError("No chain client configured")
        owner = self._address(address)

        usdc_raw = await self.chain.usdc_balance(owner)
        native_wei = await self.chain.native_balance(owner)
        return {
            "address": owner,
            "usdc": usdc_raw / 10**USDC_DECIMALS,
            "usdc_raw": str(usdc_raw),
            "pol": native_wei / 10**18,
        }

    def _address(self, address: Optional[str]) -> str:
        owner = address or self.allowances.owner
        if not owner:
            raise ValidationError("No address configured: set PRIVATE_KEY or FUNDER_ADDRESS")
        return owner

    async def get_positions(self, user: Optional[str] = None, limit: int = 100) -> Dict[str, Any]:
        """
        Open and redeemable positions with totals.

        Args:
            user: Wallet address; defaults to the allowance owner
            limit: Maximum positions per category
        """
        if self.market_data is None:
            raise ValidationError("No market data client configured")
        owner = self._address(user)

        open_positions, redeemable = await asyncio.gather(
            self.market_data.get_positions(owner, limit=limit, redeemable=False),
            self.market_data.get_positions(owner, limit=limit, redeemable=True),
        )
        positions: List[Dict[str, Any]] = [summarize_position(p) for p in open_positions + redeemable]

        return {
            "address": owner,
            "total_positions": len(positions),
            "redeemable_positions": sum(1 for p in positions if p["redeemable"]),
            "total_value": round(sum(p["current_value"] for p in positions), 2),
            "total_cash_pnl": round(sum(p["cash_pnl"] for p in positions), 2),
            "positions": positions,
        }

    async def get_portfolio(self) -> Dict[str, Any]:
        """
        Wallet USDC, exchange collateral and positions in one view.

        The exchange balance needs the trading client; when it cannot be
        read (read-only mode, exchange down) it is reported as None with the
        error message instead of failing the whole view.
        """
        wallet = await self.wallet_balances()
        positions = await self.get_positions()

        exchange_usdc = None
        exchange_error = None
        try:
            response = await self.get_balance_allowance("COLLATERAL")
            exchange_usdc = int(response["balance"]) / 10**USDC_DECIMALS
        except TradingError as e:
            exchange_error = e.message
        except (KeyError, TypeError, ValueError) as e:
            exchange_error = f"Unexpected balance response: {e}"

        if exchange_error:
            logger.warning(f"Exchange balance unavailable: {exchange_error}")

        total_liquid = wallet["usdc"] + exchange_usdc if exchange_usdc is not None else None
        return {
            "address": wallet["address"],
            "balances": {
                "usdc_wallet": wallet["usdc"],
                "usdc_exchange": exchange_usdc,
                "usdc_total_liquid": total_liquid,
                "pol": wallet["pol"],
                "exchange_error": exchange_error,
            },
            "positions_summary": {
                key: positions[key]
                for key in ("total_positions", "redeemable_positions", "total_value", "total_cash_pnl")
            },
            "positions": positions["positions"],
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
