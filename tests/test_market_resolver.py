"""
Tests for market reference resolution.
"""

import pytest

from polymarket_trader.errors import MarketDataError, NotFound, ValidationError
from polymarket_trader.market_resolver import DEFAULT_TICK_SIZE, MarketResolver, normalize_tick_size
from polymarket_trader.models import MarketRef

from conftest import BINARY_MARKET, FakeMarketData, NEG_RISK_MARKET


@pytest.fixture
def resolver(market_data):
    return MarketResolver(market_data)


class TestTickSize:
    """Tests for tick size normalization."""

    @pytest.mark.parametrize("raw,expected", [
        (0.01, "0.01"),
        ("0.010", "0.01"),
        (0.001, "0.001"),
        ("0.0001", "0.0001"),
        (0.1, "0.1"),
        ("0.05", None),
        ("abc", None),
        (None, None),
    ])
    def test_normalize(self, raw, expected):
        assert normalize_tick_size(raw) == expected


@pytest.mark.asyncio
class TestReferenceValidation:
    """Exactly one of token_id or market_slug + outcome."""

    async def test_both_forms_rejected(self, resolver, market_data):
        with pytest.raises(ValidationError):
            await resolver.resolve(market_slug="will-it-rain", outcome="YES", token_id="111")
        assert market_data.lookups == []

    async def test_neither_rejected(self, resolver):
        with pytest.raises(ValidationError):
            await resolver.resolve()

    async def test_slug_without_outcome_rejected(self, resolver):
        with pytest.raises(ValidationError, match="outcome"):
            await resolver.resolve(market_slug="will-it-rain")

    async def test_outcome_without_slug_rejected(self, resolver):
        with pytest.raises(ValidationError, match="market_slug"):
            await resolver.resolve(outcome="YES")

    async def test_invalid_tick_override_rejected(self, resolver):
        with pytest.raises(ValidationError, match="tick size"):
            await resolver.resolve(token_id="111", tick_size="0.05")


@pytest.mark.asyncio
class TestDirectTokenId:
    """Tests for token_id references, which skip the lookup."""

    async def test_defaults(self, resolver, market_data):
        market = await resolver.resolve(token_id="999")

        assert market.token_id == "999"
        assert market.tick_size == DEFAULT_TICK_SIZE
        assert market.neg_risk is False
        assert market.input_method == "token_id"
        assert market_data.lookups == []

    async def test_overrides(self, resolver):
        market = await resolver.resolve(token_id="999", tick_size="0.001", neg_risk=True)

        assert market.tick_size == "0.001"
        assert market.neg_risk is True


@pytest.mark.asyncio
class TestSlugLookup:
    """Tests for market_slug + outcome references."""

    async def test_yes_is_first_token(self, resolver):
        market = await resolver.resolve(market_slug="will-it-rain", outcome="YES")

        assert market.token_id == "111"
        assert market.outcome_index == 0
        assert market.tick_size == "0.001"
        assert market.neg_risk is False
        assert market.question == BINARY_MARKET["question"]
        assert market.token_ids == ("111", "222")
        assert market.input_method == "market_slug"

    async def test_no_is_second_token(self, resolver):
        market = await resolver.resolve(market_slug="will-it-rain", outcome="no")

        assert market.token_id == "222"
        assert market.outcome_index == 1

    async def test_tick_override_wins_over_market(self, resolver):
        market = await resolver.resolve(market_slug="will-it-rain", outcome="YES", tick_size="0.01")

        assert market.tick_size == "0.01"

    async def test_neg_risk_and_list_payload(self, resolver):
        market = await resolver.resolve(market_slug="election-winner", outcome="YES")

        assert market.token_id == "333"
        assert market.neg_risk is True
        assert market.tick_size == "0.01"

    async def test_outcome_label(self, resolver):
        market = await resolver.resolve(market_slug="election-winner", outcome="Down")

        assert market.token_id == "444"
        assert market.outcome == "Down"

    async def test_outcome_index(self, resolver):
        market = await resolver.resolve(market_slug="election-winner", outcome=1)
        assert market.token_id == "444"

    async def test_unknown_outcome(self, resolver):
        with pytest.raises(ValidationError, match="Unknown outcome"):
            await resolver.resolve(market_slug="will-it-rain", outcome="MAYBE")

    async def test_index_out_of_range(self, resolver):
        with pytest.raises(ValidationError, match="out of range"):
            await resolver.resolve(market_slug="will-it-rain", outcome=2)

    async def test_missing_market_names_slug(self, resolver):
        with pytest.raises(NotFound) as excinfo:
            await resolver.resolve(market_slug="no-such-market", outcome="YES")
        assert excinfo.value.identifier == "no-such-market"

    async def test_malformed_token_ids(self):
        market_data = FakeMarketData({"broken": {**BINARY_MARKET, "clobTokenIds": "[not json"}})

        with pytest.raises(MarketDataError) as excinfo:
            await MarketResolver(market_data).resolve(market_slug="broken", outcome="YES")
        assert excinfo.value.slug == "broken"

    async def test_missing_tick_size(self):
        payload = {k: v for k, v in NEG_RISK_MARKET.items() if k != "orderPriceMinTickSize"}
        market_data = FakeMarketData({"no-tick": payload})

        with pytest.raises(MarketDataError):
            await MarketResolver(market_data).resolve(market_slug="no-tick", outcome="YES")

    async def test_lookup_per_call(self, resolver, market_data):
        """Nothing is cached between resolutions."""
        await resolver.resolve(market_slug="will-it-rain", outcome="YES")
        await resolver.resolve(market_slug="will-it-rain", outcome="NO")

        assert market_data.lookups == ["will-it-rain", "will-it-rain"]

    async def test_resolve_ref(self, resolver):
        market = await resolver.resolve_ref(MarketRef(market_slug="will-it-rain", outcome="NO"))
        assert market.token_id == "222"
