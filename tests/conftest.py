"""
Shared fixtures: in-memory stand-ins for the chain, the exchange client
and the market-data API.
"""

from types import SimpleNamespace

import pytest
from eth_account import Account

from polymarket_trader.client import TradingClient
from polymarket_trader.config import Settings
from polymarket_trader.errors import NotFound, SigningDisabled
from polymarket_trader.models import AllowanceKind
from polymarket_trader.session import TradingSession

TEST_PRIVATE_KEY = "0x" + "11" * 32
TEST_ADDRESS = Account.from_key(TEST_PRIVATE_KEY).address

GWEI = 10**9


class FakeChain:
    """
    Chain with per-owner allowance storage. A grant takes effect immediately
    for the address that sent it.

    Broadcasts behave like a node: a nonce below the pending count is
    rejected as "nonce too low", and ``taken_nonces`` are nonces another
    process uses once our batch is under way.
    """

    def __init__(self, sender=TEST_ADDRESS, pending_count=5):
        self._sender = sender
        self.pending_count = pending_count
        self.allowances = {}
        self.approvals = {}
        self.failing_spenders = set()
        self.sent = []
        self.redemptions = []
        self.attempts = []
        self.send_errors = []
        self.nonce_errors = {}
        self.taken_nonces = set()
        self.waited = []
        self.pending_queries = 0
        self.priority_fee = 40 * GWEI
        self.base_fee = 100 * GWEI
        self.legacy_price = 50 * GWEI
        self.fee_error = None
        self.legacy_error = None
        self.ctf_balances = {}
        self.payouts = {}
        self.closed = False

    @property
    def sender_address(self):
        if self._sender is None:
            raise SigningDisabled("No private key configured; on-chain writes are disabled")
        return self._sender

    def grant(self, requirement, amount=10**12, owner=TEST_ADDRESS):
        key = (owner.lower(), requirement.token.lower(), requirement.spender.lower())
        if requirement.kind is AllowanceKind.ERC20_ALLOWANCE:
            self.allowances[key] = amount
        else:
            self.approvals[key] = True

    async def read_allowance(self, token, owner, spender):
        if spender.lower() in self.failing_spenders:
            raise ConnectionError("rpc timeout")
        return self.allowances.get((owner.lower(), token.lower(), spender.lower()), 0)

    async def read_operator_approval(self, token, owner, operator):
        if operator.lower() in self.failing_spenders:
            raise ConnectionError("rpc timeout")
        return self.approvals.get((owner.lower(), token.lower(), operator.lower()), False)

    async def suggested_priority_fee(self):
        if self.fee_error:
            raise self.fee_error
        return self.priority_fee

    async def latest_base_fee(self):
        if self.fee_error:
            raise self.fee_error
        return self.base_fee

    async def gas_price(self):
        if self.legacy_error:
            raise self.legacy_error
        return self.legacy_price

    async def pending_nonce(self, address=None):
        self.pending_queries += 1
        return self.pending_count

    def _broadcast(self, nonce):
        self.attempts.append(nonce)
        if self.send_errors:
            raise self.send_errors.pop(0)
        if nonce in self.nonce_errors:
            raise self.nonce_errors.pop(nonce)
        if nonce in self.taken_nonces:
            self.pending_count = max(self.pending_count, max(self.taken_nonces) + 1)
        if nonce < self.pending_count:
            raise ValueError({"code": -32000, "message": "nonce too low"})
        self.pending_count = nonce + 1
        return "0x" + format(nonce, "064x")

    async def send_grant(self, requirement, nonce, fee, amount):
        tx_hash = self._broadcast(nonce)
        self.sent.append(SimpleNamespace(requirement=requirement, nonce=nonce, fee=fee, amount=amount))
        self.grant(requirement, amount, owner=self.sender_address)
        return tx_hash

    async def send_redemption(self, condition_id, nonce, fee, index_sets=None, amounts=None):
        tx_hash = self._broadcast(nonce)
        self.redemptions.append(SimpleNamespace(
            condition_id=condition_id,
            nonce=nonce,
            fee=fee,
            index_sets=index_sets,
            amounts=amounts,
        ))
        return tx_hash

    async def wait_for_confirmations(self, tx_hash, confirmations):
        self.waited.append((tx_hash, confirmations))
        return tx_hash

    async def ctf_balance(self, owner, token_id):
        return self.ctf_balances.get((owner.lower(), str(token_id)), 0)

    async def payout_denominator(self, condition_id):
        return self.payouts.get(condition_id, (0, [0, 0]))[0]

    async def payout_numerators(self, condition_id, outcome_count=2):
        return list(self.payouts.get(condition_id, (0, [0, 0]))[1])

    async def usdc_balance(self, owner):
        return 12_500_000

    async def native_balance(self, owner):
        return 2 * 10**18

    async def close(self):
        self.closed = True


class FakeClob:
    """Records every ClobClient call; responses are configurable."""

    def __init__(self):
        self.calls = []
        self.init_kwargs = None
        self.post_response = {"success": True, "orderID": "0xorder1", "status": "live", "errorMsg": ""}
        self.order = {"id": "0xorder1", "status": "LIVE"}
        self.raise_on = {}
        self.creds = SimpleNamespace(api_key="test-api-key-123456", api_secret="s", api_passphrase="p")

    def configure(self, **kwargs):
        self.init_kwargs = kwargs
        return self

    def _record(self, name, *args, **kwargs):
        self.calls.append((name, args, kwargs))
        if name in self.raise_on:
            raise self.raise_on[name]

    def names(self):
        return [name for name, _, _ in self.calls]

    def create_or_derive_api_creds(self):
        self._record("create_or_derive_api_creds")
        return self.creds

    def set_api_creds(self, creds):
        self._record("set_api_creds", creds)

    def create_order(self, order_args, options=None):
        self._record("create_order", order_args, options)
        return {"signed": "limit", "args": order_args}

    def create_market_order(self, order_args, options=None):
        self._record("create_market_order", order_args, options)
        return {"signed": "market", "args": order_args}

    def post_order(self, order, order_type=None):
        self._record("post_order", order, order_type)
        return self.post_response

    def cancel(self, order_id):
        self._record("cancel", order_id)
        return {"canceled": [order_id], "not_canceled": {}}

    def cancel_all(self):
        self._record("cancel_all")
        return {"canceled": ["0xorder1"], "not_canceled": {}}

    def cancel_market_orders(self, market="", asset_id=""):
        self._record("cancel_market_orders", market=market, asset_id=asset_id)
        return {"canceled": [], "not_canceled": {}}

    def get_orders(self, params=None):
        self._record("get_orders", params)
        return [self.order]

    def get_order(self, order_id):
        self._record("get_order", order_id)
        return self.order

    def get_trades(self, params=None):
        self._record("get_trades", params)
        return []

    def get_balance_allowance(self, params):
        self._record("get_balance_allowance", params)
        return {"balance": "5000000", "allowance": "0"}

    def update_balance_allowance(self, params):
        self._record("update_balance_allowance", params)
        return None


class FakeMarketData:
    """Gamma lookups from a dict of slug -> market payload; positions per wallet."""

    def __init__(self, markets=None, positions=None):
        self.markets = dict(markets or {})
        self.positions = dict(positions or {})
        self.lookups = []
        self.position_queries = []
        self.connected = False

    async def get_market_by_slug(self, slug):
        self.lookups.append(slug)
        if slug not in self.markets:
            raise NotFound(f"Market not found: {slug}", identifier=slug)
        return self.markets[slug]

    async def get_positions(self, user, limit=100, redeemable=None):
        self.position_queries.append((user, limit, redeemable))
        held = self.positions.get(user, [])
        if redeemable is None:
            return list(held)
        return [p for p in held if bool(p.get("redeemable")) == redeemable]

    async def connect(self):
        self.connected = True
        return self

    async def close(self):
        self.connected = False


BINARY_MARKET = {
    "question": "Will it rain tomorrow?",
    "slug": "will-it-rain",
    "clobTokenIds": '["111", "222"]',
    "outcomes": '["Yes", "No"]',
    "orderPriceMinTickSize": 0.001,
    "negRisk": False,
    "endDate": "2026-12-31T00:00:00Z",
    "conditionId": "0xcond",
}

NEG_RISK_MARKET = {
    "question": "Who wins the election?",
    "slug": "election-winner",
    "clobTokenIds": ["333", "444"],
    "outcomes": ["Up", "Down"],
    "orderPriceMinTickSize": "0.01",
    "negRisk": True,
}


def make_settings(private_key=TEST_PRIVATE_KEY, funder_address=None, **overrides):
    values = dict(
        private_key=private_key,
        funder_address=funder_address,
        signature_type=None,
        chain_id=137,
        rpc_url="http://localhost:8545",
        clob_host="https://clob.example",
        gamma_url="https://gamma.example",
        min_priority_fee_gwei=30,
        approval_gas_limit=200_000,
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def chain():
    return FakeChain()


@pytest.fixture
def clob():
    return FakeClob()


@pytest.fixture
def market_data():
    return FakeMarketData({
        "will-it-rain": dict(BINARY_MARKET),
        "election-winner": dict(NEG_RISK_MARKET),
    })


@pytest.fixture
def session(settings, chain, clob, market_data):
    client = TradingClient(settings, factory=clob.configure)
    return TradingSession(settings, chain=chain, client=client, market_data=market_data)


def grant_everything(chain, requirements, owner=TEST_ADDRESS):
    for req in requirements:
        chain.grant(req, owner=owner)
