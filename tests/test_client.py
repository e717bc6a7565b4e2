"""
Tests for the exchange client lifecycle and error translation.
"""

import asyncio
import threading

import httpx
import pytest
from py_clob_client.exceptions import PolyApiException

from polymarket_trader.client import TradingClient, translate_exchange_error
from polymarket_trader.errors import (
    NotFound,
    OrderRejected,
    SigningDisabled,
    TradingError,
    UpstreamUnavailable,
)

from conftest import FakeClob, make_settings


class SlowFactory:
    """Factory that blocks until released, counting constructions."""

    def __init__(self, fail_first=False):
        self.count = 0
        self.fail_first = fail_first
        self.release = threading.Event()
        self.clob = FakeClob()

    def __call__(self, **kwargs):
        self.count += 1
        self.release.wait(timeout=5)
        if self.fail_first and self.count == 1:
            raise ConnectionError("clob unreachable")
        return self.clob.configure(**kwargs)


def poly_error(status_code):
    error = PolyApiException(error_msg="boom")
    error.status_code = status_code
    return error


class TestErrorTranslation:
    """Tests for translate_exchange_error."""

    def test_4xx_is_rejection(self):
        error = translate_exchange_error(poly_error(400), "post_order")
        assert isinstance(error, OrderRejected)
        assert error.status_code == 400

    def test_404_is_not_found(self):
        assert isinstance(translate_exchange_error(poly_error(404), "get_order"), NotFound)

    def test_5xx_is_upstream(self):
        assert isinstance(translate_exchange_error(poly_error(502), "post_order"), UpstreamUnavailable)

    def test_no_status_is_upstream(self):
        assert isinstance(translate_exchange_error(poly_error(None), "get_orders"), UpstreamUnavailable)

    def test_transport_error_is_upstream(self):
        error = translate_exchange_error(httpx.ConnectError("refused"), "get_orders")
        assert isinstance(error, UpstreamUnavailable)

    def test_anything_else_is_trading_error(self):
        error = translate_exchange_error(RuntimeError("odd"), "create_order")
        assert type(error) is TradingError


@pytest.mark.asyncio
class TestConnect:
    """Tests for two-phase startup."""

    async def test_unconnected_client_refuses_access(self):
        client = TradingClient(make_settings())

        assert not client.connected
        with pytest.raises(RuntimeError):
            client.clob

    async def test_no_private_key(self):
        client = TradingClient(make_settings(private_key=None), factory=FakeClob().configure)

        with pytest.raises(SigningDisabled):
            await client.connect()
        with pytest.raises(SigningDisabled):
            client.clob

    async def test_derives_credentials(self):
        clob = FakeClob()
        client = TradingClient(make_settings(), factory=clob.configure)

        await client.connect()

        assert client.connected
        assert client.clob is clob
        assert clob.names() == ["create_or_derive_api_creds", "set_api_creds"]
        assert clob.init_kwargs["chain_id"] == 137
        assert clob.init_kwargs["signature_type"] == 0
        assert clob.init_kwargs["funder"] is None

    async def test_funder_implies_proxy_signature(self):
        clob = FakeClob()
        funder = "0x" + "ab" * 20
        client = TradingClient(make_settings(funder_address=funder), factory=clob.configure)

        await client.connect()

        assert clob.init_kwargs["funder"] == funder
        assert clob.init_kwargs["signature_type"] == 2

    async def test_concurrent_callers_share_one_initialization(self):
        factory = SlowFactory()
        client = TradingClient(make_settings(), factory=factory)

        waiters = [asyncio.ensure_future(client.connect()) for _ in range(5)]
        await asyncio.sleep(0.05)
        factory.release.set()
        results = await asyncio.gather(*waiters)

        assert factory.count == 1
        assert all(r is factory.clob for r in results)

    async def test_failed_initialization_can_be_retried(self):
        factory = SlowFactory(fail_first=True)
        factory.release.set()
        client = TradingClient(make_settings(), factory=factory)

        with pytest.raises(TradingError):
            await client.connect()
        assert not client.connected

        await client.connect()

        assert factory.count == 2
        assert client.connected

    async def test_call_connects_lazily(self):
        clob = FakeClob()
        client = TradingClient(make_settings(), factory=clob.configure)

        orders = await client.call("get_orders")

        assert orders == [clob.order]
        assert client.connected
