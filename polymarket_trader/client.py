"""
Exchange client lifecycle.

Wraps py_clob_client's ClobClient. Construction is cheap and offline;
connect() builds the ClobClient and derives L2 API credentials from the
private key. Concurrent first callers share one initialization task, and
a failed initialization is forgotten so the next call retries.

py_clob_client is synchronous, so every call runs in a worker thread.

Key concepts:
- Private Key: signs orders and derives API credentials
- Funder Address: proxy wallet holding the funds (signature types 1 and 2)
- API Credentials: derived automatically from the private key
"""

import asyncio
import logging
from typing import Any, Callable, Optional

import httpx
from py_clob_client.client import ClobClient
from py_clob_client.exceptions import PolyApiException

from .config import Settings
from .errors import NotFound, OrderRejected, SigningDisabled, TradingError, UpstreamUnavailable

logger = logging.getLogger(__name__)


def translate_exchange_error(error: Exception, operation: str) -> TradingError:
    """Map a py_clob_client failure onto the error taxonomy."""
    if isinstance(error, PolyApiException):
        status = getattr(error, "status_code", None)
        detail = getattr(error, "error_msg", None) or str(error)
        if status is None or status >= 500:
            return UpstreamUnavailable(
                f"Exchange {operation} failed: {detail}",
                service="exchange",
                context={"status_code": status},
            )
        if status == 404:
            return NotFound(f"Exchange {operation}: not found ({detail})", identifier=operation)
        return OrderRejected(f"Exchange rejected {operation}: {detail}", status_code=status)

    if isinstance(error, httpx.HTTPError):
        return UpstreamUnavailable(f"Exchange {operation} failed: {error}", service="exchange")

    return TradingError(f"Exchange {operation} failed: {error}")


class TradingClient:
    """
    Authenticated CLOB client with explicit two-phase startup.

    Usage:
        client = TradingClient(Settings.load())
        await client.connect()
        orders = await client.call("get_orders")
    """

    def __init__(self, settings: Settings, factory: Callable[..., Any] = ClobClient):
        self.settings = settings
        self._factory = factory
        self._clob: Optional[Any] = None
        self._init_task: Optional[asyncio.Task] = None

    @property
    def connected(self) -> bool:
        return self._clob is not None

    @property
    def clob(self):
        """The connected ClobClient."""
        if not self.settings.can_sign:
            raise SigningDisabled("No private key configured; trading calls are disabled")
        if self._clob is None:
            raise RuntimeError("TradingClient is not connected; await connect() first")
        return self._clob

    def _build(self):
        settings = self.settings
        logger.info("Creating Polymarket CLOB client...")
        logger.info(f"  Host: {settings.clob_host}")
        logger.info(f"  Chain ID: {settings.chain_id}")
        logger.info(f"  Signature Type: {settings.effective_signature_type}")
        if settings.funder_address:
            logger.info(f"  Funder: {settings.funder_address[:10]}...{settings.funder_address[-6:]}")

        client = self._factory(
            host=settings.clob_host,
            key=settings.private_key,
            chain_id=settings.chain_id,
            signature_type=settings.effective_signature_type,
            funder=settings.funder_address or None,
        )

        # Derive API credentials (L2 authentication)
        logger.info("Deriving API credentials from private key...")
        credentials = client.create_or_derive_api_creds()
        client.set_api_creds(credentials)

        logger.info(f"Authentication successful: API key {credentials.api_key[:8]}...")
        return client

    async def _initialize(self):
        try:
            client = await asyncio.to_thread(self._build)
        except Exception as e:
            raise translate_exchange_error(e, "authentication") from e
        self._clob = client
        return client

    async def connect(self):
        """
        Build the ClobClient and derive credentials, once.

        Raises:
            SigningDisabled: No private key configured
        """
        if self._clob is not None:
            return self._clob
        if not self.settings.can_sign:
            raise SigningDisabled("No private key configured; trading calls are disabled")

        if self._init_task is None:
            self._init_task = asyncio.ensure_future(self._initialize())
        task = self._init_task

        try:
            return await asyncio.shield(task)
        except Exception:
            if self._init_task is task and task.done():
                self._init_task = None
            raise

    async def call(self, method: str, *args, **kwargs):
        """
        Run a ClobClient method in a worker thread.

        Connects first if needed. Library errors are translated.
        """
        clob = await self.connect()
        fn = getattr(clob, method)
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except TradingError:
            raise
        except Exception as e:
            logger.debug(f"{method} raised {type(e).__name__}: {e}")
            raise translate_exchange_error(e, method) from e
