"""
Tests for balance/allowance mirror and trade history.
"""

import pytest
from py_clob_client.clob_types import AssetType

from polymarket_trader.contracts import ALLOWANCE_REQUIREMENTS
from polymarket_trader.errors import ApprovalRequired, UpstreamUnavailable, ValidationError

from conftest import TEST_ADDRESS, grant_everything

pytestmark = pytest.mark.asyncio


class TestBalanceAllowance:
    """Tests for the exchange's balance/allowance view."""

    async def test_collateral(self, session, clob):
        result = await session.account.get_balance_allowance("COLLATERAL")

        assert result["balance"] == "5000000"
        _, (params,), _ = clob.calls[-1]
        assert params.asset_type == AssetType.COLLATERAL
        assert params.signature_type == 0

    async def test_conditional_needs_token(self, session, clob):
        with pytest.raises(ValidationError):
            await session.account.get_balance_allowance("CONDITIONAL")
        assert clob.calls == []

    async def test_unknown_asset_type(self, session):
        with pytest.raises(ValidationError):
            await session.account.get_balance_allowance("STOCKS")

    async def test_update_requires_approvals(self, session, clob):
        with pytest.raises(ApprovalRequired):
            await session.account.update_balance_allowance("COLLATERAL")
        assert "update_balance_allowance" not in clob.names()

    async def test_update(self, session, chain, clob):
        grant_everything(chain, ALLOWANCE_REQUIREMENTS)

        result = await session.account.update_balance_allowance("CONDITIONAL", token_id="111")

        assert result["success"] is True
        _, (params,), _ = clob.calls[-1]
        assert params.asset_type == AssetType.CONDITIONAL
        assert params.token_id == "111"


class TestHistoryAndWallet:
    async def test_trade_history_filters(self, session, clob):
        await session.account.get_trade_history(market="0xcond")

        _, (params,), _ = clob.calls[-1]
        assert params.market == "0xcond"
        assert params.maker_address is None

    async def test_wallet_balances(self, session):
        balances = await session.account.wallet_balances()

        assert balances["address"] == TEST_ADDRESS
        assert balances["usdc"] == pytest.approx(12.5)
        assert balances["pol"] == pytest.approx(2.0)


OPEN_POSITION = {
    "asset": "111",
    "conditionId": "0xcond",
    "title": "Will it rain tomorrow?",
    "outcome": "Yes",
    "outcomeIndex": 0,
    "size": "40",
    "avgPrice": "0.5",
    "curPrice": "0.6",
    "currentValue": "24.004",
    "cashPnl": "4.004",
    "redeemable": False,
}

REDEEMABLE_POSITION = {
    "asset": "444",
    "conditionId": "0xcond2",
    "outcome": "Down",
    "outcomeIndex": 1,
    "size": 10,
    "currentValue": 10,
    "cashPnl": None,
    "redeemable": True,
    "negativeRisk": True,
}


class TestPositionsAndPortfolio:
    """Positions from the data API, combined with balances into a portfolio."""

    async def test_positions_totals(self, session, market_data):
        market_data.positions[TEST_ADDRESS] = [OPEN_POSITION, REDEEMABLE_POSITION]

        result = await session.account.get_positions()

        assert result["address"] == TEST_ADDRESS
        assert result["total_positions"] == 2
        assert result["redeemable_positions"] == 1
        assert result["total_value"] == pytest.approx(34.0)
        assert result["total_cash_pnl"] == pytest.approx(4.0)
        assert [q[2] for q in market_data.position_queries] == [False, True]

        redeemable = result["positions"][1]
        assert redeemable["token_id"] == "444"
        assert redeemable["neg_risk"] is True
        assert redeemable["outcome_index"] == 1
        assert redeemable["cash_pnl"] == 0.0

    async def test_positions_for_other_user(self, session, market_data):
        result = await session.account.get_positions(user="0xother", limit=5)

        assert result["total_positions"] == 0
        assert market_data.position_queries[0] == ("0xother", 5, False)

    async def test_portfolio(self, session, market_data):
        market_data.positions[TEST_ADDRESS] = [OPEN_POSITION]

        portfolio = await session.account.get_portfolio()

        balances = portfolio["balances"]
        assert balances["usdc_wallet"] == pytest.approx(12.5)
        assert balances["usdc_exchange"] == pytest.approx(5.0)
        assert balances["usdc_total_liquid"] == pytest.approx(17.5)
        assert balances["exchange_error"] is None
        assert portfolio["positions_summary"]["total_positions"] == 1
        assert portfolio["positions"][0]["token_id"] == "111"
        assert portfolio["timestamp"]

    async def test_portfolio_without_exchange_balance(self, session, clob):
        """An unreachable exchange leaves the rest of the portfolio intact."""
        clob.raise_on["get_balance_allowance"] = UpstreamUnavailable("exchange down", service="clob")

        portfolio = await session.account.get_portfolio()

        balances = portfolio["balances"]
        assert balances["usdc_exchange"] is None
        assert balances["usdc_total_liquid"] is None
        assert balances["usdc_wallet"] == pytest.approx(12.5)
        assert "exchange down" in balances["exchange_error"]
