"""
Command line interface.

Usage:
    python -m polymarket_trader check-allowances
    python -m polymarket_trader grant-allowances --wait-confirmations 1
    python -m polymarket_trader place-limit-order --side BUY --market-slug SLUG --outcome YES --price 0.45 --size 10
    python -m polymarket_trader place-immediate-order --side BUY --token-id TOKEN --amount 5
    python -m polymarket_trader market SLUG
    python -m polymarket_trader redeem --condition-id 0xCONDITION

Every command prints JSON on stdout. Exit codes:
    0  success
    1  error
    2  token approvals required (run grant-allowances)
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from .config import Settings, create_env_template
from .contracts import REQUIREMENTS_BY_KEY, USDC_DECIMALS
from .errors import ApprovalRequired, TradingError
from .logger import setup_logging
from .models import ImmediateOrderIntent, LimitOrderIntent, MarketRef, Side, TimeInForce
from .session import TradingSession

logger = logging.getLogger("polymarket_trader.cli")

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_APPROVAL_REQUIRED = 2


def emit(payload):
    print(json.dumps(payload, indent=2, default=str))


def _market_ref(args) -> MarketRef:
    return MarketRef(
        market_slug=args.market_slug,
        outcome=args.outcome,
        token_id=args.token_id,
        tick_size=args.tick_size,
        neg_risk=args.neg_risk,
    )


# === Allowances ===

async def cmd_check_allowances(session: TradingSession, args):
    status = await session.allowances.check()
    return {
        **status.to_dict(),
        "satisfied": status.satisfied,
        "rationale": session.allowances.rationale(),
    }


async def cmd_grant_allowances(session: TradingSession, args):
    amount = int(args.amount * 10**USDC_DECIMALS) if args.amount is not None else None
    result = await session.allowances.grant_all(
        selection=args.only,
        wait_confirmations=args.wait_confirmations,
        force=args.force,
        min_priority_fee=args.min_priority_fee_gwei,
        amount=amount,
    )
    return result.to_dict()


# === Orders ===

async def cmd_place_limit_order(session: TradingSession, args):
    intent = LimitOrderIntent(
        side=Side.parse(args.side),
        market=_market_ref(args),
        price=args.price,
        size=args.size,
        time_in_force=TimeInForce.parse(args.time_in_force),
        expiration=args.expiration,
    )
    order = await session.orders.submit_limit_order(intent, force=args.force)
    return order.to_dict()


async def cmd_place_immediate_order(session: TradingSession, args):
    intent = ImmediateOrderIntent(
        side=Side.parse(args.side),
        market=_market_ref(args),
        amount=args.amount,
        time_in_force=TimeInForce.parse(args.time_in_force),
    )
    order = await session.orders.submit_immediate_order(intent, force=args.force)
    return order.to_dict()


async def cmd_open_orders(session: TradingSession, args):
    return await session.orders.get_open_orders(market=args.market, token_id=args.token_id)


async def cmd_get_order(session: TradingSession, args):
    return await session.orders.get_order(args.order_id)


async def cmd_cancel_order(session: TradingSession, args):
    return await session.orders.cancel(args.order_id)


async def cmd_cancel_all(session: TradingSession, args):
    return await session.orders.cancel_all()


async def cmd_cancel_market(session: TradingSession, args):
    return await session.orders.cancel_market(args.token_id)


# === Account ===

async def cmd_trade_history(session: TradingSession, args):
    return await session.account.get_trade_history(market=args.market, maker_address=args.maker_address)


async def cmd_balance_allowance(session: TradingSession, args):
    return await session.account.get_balance_allowance(args.asset_type, args.token_id)


async def cmd_update_balance_allowance(session: TradingSession, args):
    return await session.account.update_balance_allowance(args.asset_type, args.token_id)


async def cmd_wallet_balance(session: TradingSession, args):
    return await session.account.wallet_balances(args.address)


async def cmd_positions(session: TradingSession, args):
    return await session.account.get_positions(user=args.user, limit=args.limit)


async def cmd_portfolio(session: TradingSession, args):
    return await session.account.get_portfolio()


async def cmd_redeem(session: TradingSession, args):
    result = await session.redeemer.redeem(
        args.condition_id,
        token_id=args.token_id,
        outcome_index=args.outcome_index,
        neg_risk=args.neg_risk,
        wait_confirmations=args.wait_confirmations,
        min_priority_fee=args.min_priority_fee_gwei,
    )
    return result.to_dict()


# === Market data ===

async def cmd_market(session: TradingSession, args):
    return await session.market_data.get_market_by_slug(args.slug)


async def cmd_event(session: TradingSession, args):
    return await session.market_data.get_event_by_slug(args.slug)


async def cmd_search(session: TradingSession, args):
    return await session.market_data.search(args.query)


async def cmd_tags(session: TradingSession, args):
    return await session.market_data.get_tags()


async def cmd_markets_by_tag(session: TradingSession, args):
    return await session.market_data.get_markets_by_tag(args.tag_id, limit=args.limit, closed=args.closed)


async def cmd_active_markets(session: TradingSession, args):
    return await session.market_data.get_active_markets(limit=args.limit, offset=args.offset)


async def cmd_order_book(session: TradingSession, args):
    book = await session.market_data.get_order_book(args.token_id)
    return book.to_dict()


async def cmd_resolve(session: TradingSession, args):
    market = await session.resolver.resolve_ref(_market_ref(args))
    return market.to_dict()


def _add_market_ref(parser: argparse.ArgumentParser):
    group = parser.add_argument_group("market", "Either --token-id, or --market-slug with --outcome")
    group.add_argument("--market-slug", help="Market slug from the Polymarket URL")
    group.add_argument("--outcome", help="YES, NO, an outcome label, or an outcome index")
    group.add_argument("--token-id", help="CLOB token id (skips the market lookup)")
    group.add_argument("--tick-size", help="Tick size override (0.1, 0.01, 0.001, 0.0001)")
    group.add_argument(
        "--neg-risk",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Override the negative-risk flag",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="polymarket_trader",
        description="Polymarket trading pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--env-file", help="Load settings from this .env file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging on the console")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Setup
    subparsers.add_parser("config", help="Show the effective configuration (no secrets)")
    init_parser = subparsers.add_parser("init-env", help="Write a .env template")
    init_parser.add_argument("--path", default=".env.template", help="Template path")

    # Allowances
    sub = subparsers.add_parser("check-allowances", help="Show which token approvals are in place")
    sub.set_defaults(func=cmd_check_allowances)

    sub = subparsers.add_parser("grant-allowances", help="Grant missing token approvals")
    sub.add_argument(
        "--only",
        action="append",
        choices=sorted(REQUIREMENTS_BY_KEY),
        help="Grant only this requirement (repeatable)",
    )
    sub.add_argument(
        "--wait-confirmations",
        type=int,
        default=0,
        choices=range(0, 6),
        help="Confirmations to wait for per transaction (0-5, default 0)",
    )
    sub.add_argument("--min-priority-fee-gwei", type=float, help="Priority fee floor in gwei")
    sub.add_argument("--amount", type=float, help="Exact USDC allowance (default unlimited)")
    sub.add_argument("--force", action="store_true", help="Re-grant approvals that are already in place")
    sub.set_defaults(func=cmd_grant_allowances)

    # Orders
    sub = subparsers.add_parser("place-limit-order", help="Place a GTC/GTD limit order")
    sub.add_argument("--side", required=True, choices=["BUY", "SELL", "buy", "sell"])
    _add_market_ref(sub)
    sub.add_argument("--price", type=float, required=True, help="Price per share (0-1)")
    sub.add_argument("--size", type=float, required=True, help="Number of shares")
    sub.add_argument("--time-in-force", default="GTC", choices=["GTC", "GTD"])
    sub.add_argument("--expiration", type=int, help="Unix seconds (GTD only)")
    sub.add_argument("--force", action="store_true", help="Skip the approval check")
    sub.set_defaults(func=cmd_place_limit_order)

    sub = subparsers.add_parser("place-immediate-order", help="Place a FOK/FAK order against the book")
    sub.add_argument("--side", required=True, choices=["BUY", "SELL", "buy", "sell"])
    _add_market_ref(sub)
    sub.add_argument("--amount", type=float, required=True, help="BUY: USDC to spend. SELL: shares to sell")
    sub.add_argument("--time-in-force", default="FOK", choices=["FOK", "FAK"])
    sub.add_argument("--force", action="store_true", help="Skip the approval check")
    sub.set_defaults(func=cmd_place_immediate_order)

    sub = subparsers.add_parser("open-orders", help="List open orders")
    sub.add_argument("--market", help="Filter by condition id")
    sub.add_argument("--token-id", help="Filter by token id")
    sub.set_defaults(func=cmd_open_orders)

    sub = subparsers.add_parser("get-order", help="Show one order")
    sub.add_argument("order_id")
    sub.set_defaults(func=cmd_get_order)

    sub = subparsers.add_parser("cancel-order", help="Cancel one order")
    sub.add_argument("order_id")
    sub.set_defaults(func=cmd_cancel_order)

    sub = subparsers.add_parser("cancel-all", help="Cancel all open orders")
    sub.set_defaults(func=cmd_cancel_all)

    sub = subparsers.add_parser("cancel-market", help="Cancel all open orders on one token")
    sub.add_argument("token_id")
    sub.set_defaults(func=cmd_cancel_market)

    # Account
    sub = subparsers.add_parser("trade-history", help="List trades for this account")
    sub.add_argument("--market", help="Filter by condition id")
    sub.add_argument("--maker-address", help="Filter by maker address")
    sub.set_defaults(func=cmd_trade_history)

    for name, func, text in (
        ("balance-allowance", cmd_balance_allowance, "Exchange view of balance and allowance"),
        ("update-balance-allowance", cmd_update_balance_allowance, "Refresh the exchange view from chain"),
    ):
        sub = subparsers.add_parser(name, help=text)
        sub.add_argument("--asset-type", default="COLLATERAL", choices=["COLLATERAL", "CONDITIONAL"])
        sub.add_argument("--token-id", help="Token id (CONDITIONAL only)")
        sub.set_defaults(func=func)

    sub = subparsers.add_parser("wallet-balance", help="On-chain USDC and POL balances")
    sub.add_argument("--address", help="Defaults to the funder, else the signer")
    sub.set_defaults(func=cmd_wallet_balance)

    sub = subparsers.add_parser("positions", help="Open and redeemable positions from the data API")
    sub.add_argument("--user", help="Wallet address (defaults to the funder, else the signer)")
    sub.add_argument("--limit", type=int, default=100)
    sub.set_defaults(func=cmd_positions)

    sub = subparsers.add_parser("portfolio", help="Wallet and exchange balances with positions")
    sub.set_defaults(func=cmd_portfolio)

    sub = subparsers.add_parser("redeem", help="Redeem positions in a resolved market")
    sub.add_argument("--condition-id", required=True, help="Market condition id")
    sub.add_argument("--token-id", help="Outcome token held (required with --neg-risk)")
    sub.add_argument("--outcome-index", type=int, choices=[0, 1], help="Outcome of --token-id (required with --neg-risk)")
    sub.add_argument("--neg-risk", action="store_true", help="Redeem through the NegRisk Adapter")
    sub.add_argument(
        "--wait-confirmations",
        type=int,
        default=1,
        choices=range(0, 6),
        help="Confirmations to wait for (0-5, default 1)",
    )
    sub.add_argument("--min-priority-fee-gwei", type=float, help="Priority fee floor in gwei")
    sub.set_defaults(func=cmd_redeem)

    # Market data
    sub = subparsers.add_parser("market", help="Market details by slug")
    sub.add_argument("slug")
    sub.set_defaults(func=cmd_market)

    sub = subparsers.add_parser("event", help="Event details by slug")
    sub.add_argument("slug")
    sub.set_defaults(func=cmd_event)

    sub = subparsers.add_parser("search", help="Search markets, events and profiles")
    sub.add_argument("query")
    sub.set_defaults(func=cmd_search)

    sub = subparsers.add_parser("tags", help="List all tags")
    sub.set_defaults(func=cmd_tags)

    sub = subparsers.add_parser("markets-by-tag", help="Markets carrying a tag")
    sub.add_argument("tag_id")
    sub.add_argument("--limit", type=int, default=20)
    sub.add_argument("--closed", action="store_true", help="Include closed markets")
    sub.set_defaults(func=cmd_markets_by_tag)

    sub = subparsers.add_parser("active-markets", help="List active markets")
    sub.add_argument("--limit", type=int, default=20)
    sub.add_argument("--offset", type=int, default=0)
    sub.set_defaults(func=cmd_active_markets)

    sub = subparsers.add_parser("order-book", help="Order book for a token")
    sub.add_argument("token_id")
    sub.set_defaults(func=cmd_order_book)

    sub = subparsers.add_parser("resolve", help="Resolve a market reference to order parameters")
    _add_market_ref(sub)
    sub.set_defaults(func=cmd_resolve)

    return parser


async def dispatch(session: TradingSession, args) -> int:
    """Run one command and print its result. Returns the exit code."""
    try:
        async with session:
            result = await args.func(session, args)
    except ApprovalRequired as e:
        emit(e.to_dict())
        return EXIT_APPROVAL_REQUIRED
    except TradingError as e:
        logger.error(e.message)
        emit(e.to_dict())
        return EXIT_ERROR

    emit(result)
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return EXIT_OK

    setup_logging(verbose=args.verbose)

    if args.command == "init-env":
        path = create_env_template(args.path)
        emit({"written": str(path)})
        return EXIT_OK

    settings = Settings.from_file(args.env_file) if args.env_file else Settings.load()

    if args.command == "config":
        is_valid, errors = settings.validate()
        emit({**settings.summary(), "valid": is_valid, "errors": errors})
        return EXIT_OK if is_valid else EXIT_ERROR

    try:
        session = TradingSession.from_settings(settings)
    except TradingError as e:
        emit(e.to_dict())
        return EXIT_ERROR

    return asyncio.run(dispatch(session, args))


if __name__ == "__main__":
    sys.exit(main())
