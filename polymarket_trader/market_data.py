"""
Read-only market data client.

Handles:
- Gamma API (markets, events, tags, search)
- CLOB public order book
- Data API (positions held by a wallet)
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from .config import CLOB_HOST, DATA_API_URL, GAMMA_API_URL, REQUEST_TIMEOUT
from .errors import NotFound, UpstreamUnavailable, ValidationError

logger = logging.getLogger(__name__)

MAX_RATE_LIMIT_WAIT = 30.0  # seconds


@dataclass
class OrderBook:
    """Order book snapshot for one token."""
    token_id: str
    bids: List[Dict[str, Any]]
    asks: List[Dict[str, Any]]
    market: Optional[str] = None
    timestamp: Optional[str] = None
    tick_size: Optional[str] = None
    neg_risk: Optional[bool] = None

    @property
    def best_bid(self) -> Optional[float]:
        if not self.bids:
            return None
        return max(float(b["price"]) for b in self.bids)

    @property
    def best_ask(self) -> Optional[float]:
        if not self.asks:
            return None
        return min(float(a["price"]) for a in self.asks)

    @property
    def spread(self) -> Optional[float]:
        if self.best_bid is None or self.best_ask is None:
            return None
        return self.best_ask - self.best_bid

    @property
    def midpoint(self) -> Optional[float]:
        if self.best_bid is None or self.best_ask is None:
            return None
        return (self.best_bid + self.best_ask) / 2

    def to_dict(self) -> Dict[str, Any]:
        return {
            "token_id": self.token_id,
            "market": self.market,
            "timestamp": self.timestamp,
            "tick_size": self.tick_size,
            "neg_risk": self.neg_risk,
            "best_bid": self.best_bid,
            "best_ask": self.best_ask,
            "spread": self.spread,
            "midpoint": self.midpoint,
            "bids": self.bids,
            "asks": self.asks,
        }


class MarketDataClient:
    """
    Async client for Polymarket's public market data.

    Usage:
        async with MarketDataClient() as data:
            market = await data.get_market_by_slug("will-it-rain")
    """

    def __init__(
        self,
        gamma_url: str = GAMMA_API_URL,
        clob_url: str = CLOB_HOST,
        data_url: str = DATA_API_URL,
        timeout: float = REQUEST_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.gamma_url = gamma_url.rstrip("/")
        self.clob_url = clob_url.rstrip("/")
        self.data_url = data_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def connect(self):
        """Initialize HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout, connect=5.0),
                limits=httpx.Limits(max_connections=20),
            )
        return self

    async def close(self):
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _get(self, url: str, params: Optional[Dict[str, Any]] = None, _retried: bool = False) -> Any:
        """GET with error translation."""
        if self._client is None:
            await self.connect()

        try:
            response = await self._client.get(url, params=params)
        except httpx.HTTPError as e:
            raise UpstreamUnavailable(f"Request to {url} failed: {e}", service="market-data") from e

        if response.status_code == 429 and not _retried:
            wait_time = min(float(response.headers.get("Retry-After", "1")), MAX_RATE_LIMIT_WAIT)
            logger.warning(f"Rate limited, waiting {wait_time:.1f}s")
            await asyncio.sleep(wait_time)
            return await self._get(url, params, _retried=True)

        if response.status_code == 404:
            raise NotFound(f"Not found: {url}", identifier=str(params or url))
        if response.status_code >= 500 or response.status_code == 429:
            raise UpstreamUnavailable(
                f"{url} returned HTTP {response.status_code}",
                service="market-data",
                context={"status_code": response.status_code},
            )
        if response.status_code >= 400:
            raise ValidationError(
                f"{url} rejected the request: HTTP {response.status_code} - {response.text[:200]}",
                context={"status_code": response.status_code},
            )

        return response.json()

    # === GAMMA API (Markets) ===

    async def get_market_by_slug(self, slug: str) -> Dict[str, Any]:
        """
        Fetch one market by slug.

        Raises:
            NotFound: No market has this slug
        """
        data = await self._get(f"{self.gamma_url}/markets", params={"slug": slug})
        markets = data if isinstance(data, list) else [data] if data else []
        if not markets:
            raise NotFound(f"Market not found: {slug}", identifier=slug)
        return markets[0]

    async def get_event_by_slug(self, slug: str) -> Dict[str, Any]:
        """Fetch one event (with its markets) by slug."""
        data = await self._get(f"{self.gamma_url}/events", params={"slug": slug})
        events = data if isinstance(data, list) else [data] if data else []
        if not events:
            raise NotFound(f"Event not found: {slug}", identifier=slug)
        return events[0]

    async def get_active_markets(self, limit: int = 20, offset: int = 0) -> List[Dict[str, Any]]:
        """List open markets."""
        params = {
            "active": "true",
            "closed": "false",
            "limit": limit,
            "offset": offset,
        }
        return await self._get(f"{self.gamma_url}/markets", params=params)

    async def search(self, query: str) -> Dict[str, Any]:
        """Full-text search over events, markets and profiles."""
        if not query.strip():
            raise ValidationError("Search query must not be empty")
        return await self._get(f"{self.gamma_url}/public-search", params={"q": query})

    async def get_tags(self) -> List[Dict[str, Any]]:
        return await self._get(f"{self.gamma_url}/tags")

    async def get_markets_by_tag(self, tag_id, limit: int = 20, closed: bool = False) -> List[Dict[str, Any]]:
        """List markets carrying a tag id."""
        try:
            tag = int(tag_id)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"tag_id must be a number, got {tag_id!r}") from e

        params = {
            "tag_id": tag,
            "limit": limit,
            "closed": str(closed).lower(),
        }
        return await self._get(f"{self.gamma_url}/markets", params=params)

    # === CLOB API (Order Book) ===

    async def get_order_book(self, token_id: str) -> OrderBook:
        """Get order book for a token."""
        data = await self._get(f"{self.clob_url}/book", params={"token_id": token_id})

        return OrderBook(
            token_id=token_id,
            bids=data.get("bids", []),
            asks=data.get("asks", []),
            market=data.get("market"),
            timestamp=data.get("timestamp"),
            tick_size=data.get("tick_size"),
            neg_risk=data.get("neg_risk"),
        )

    # === DATA API (Positions) ===

    async def get_positions(
        self,
        user: str,
        limit: int = 100,
        redeemable: Optional[bool] = None,
    ) -> List[Dict[str, Any]]:
        """
        Positions held by a wallet, with current value and P&L.

        Args:
            user: Wallet address (the proxy wallet for Polymarket accounts)
            limit: Maximum positions to return
            redeemable: Only redeemable (True) or only open (False) positions
        """
        if not user:
            raise ValidationError("A wallet address is required to list positions")
        params = {"user": user, "limit": limit}
        if redeemable is not None:
            params["redeemable"] = str(redeemable).lower()
        data = await self._get(f"{self.data_url}/positions", params=params)
        return data if isinstance(data, list) else []
