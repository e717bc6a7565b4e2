"""
Process-level wiring.

Builds every component from one Settings object. Nothing here touches the
network; the exchange client connects lazily on first use.
"""

import logging
from typing import Optional

from .account import AccountService
from .allowance_manager import AllowanceManager
from .chain import ChainClient
from .client import TradingClient
from .config import Settings
from .errors import ValidationError
from .fees import FeeEstimator
from .market_data import MarketDataClient
from .market_resolver import MarketResolver
from .nonces import NonceSequencer
from .order_submitter import OrderSubmitter
from .redemption import PositionRedeemer

logger = logging.getLogger(__name__)


class TradingSession:
    """
    All components for one account.

    Usage:
        async with TradingSession.from_settings(Settings.load()) as session:
            status = await session.allowances.check()
    """

    def __init__(
        self,
        settings: Settings,
        chain,
        client: TradingClient,
        market_data: MarketDataClient,
    ):
        self.settings = settings
        self.chain = chain
        self.client = client
        self.market_data = market_data

        self.fees = FeeEstimator(chain, min_priority_fee_gwei=settings.min_priority_fee_gwei)
        self.nonces = NonceSequencer(chain, address=settings.signer_address)
        self.allowances = AllowanceManager(chain, self.fees, self.nonces, owner=settings.owner_address)
        self.resolver = MarketResolver(market_data)
        self.orders = OrderSubmitter(client, self.resolver, self.allowances)
        self.account = AccountService(client, self.allowances, chain, market_data)
        self.redeemer = PositionRedeemer(chain, self.fees, self.nonces, self.allowances)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "TradingSession":
        settings = settings or Settings.load()
        is_valid, errors = settings.validate()
        if not is_valid:
            raise ValidationError(f"Invalid configuration: {'; '.join(errors)}", context={"errors": errors})

        if not settings.can_sign:
            logger.info("No private key configured; running in read-only mode")

        return cls(
            settings=settings,
            chain=ChainClient.from_settings(settings),
            client=TradingClient(settings),
            market_data=MarketDataClient(
                gamma_url=settings.gamma_url,
                clob_url=settings.clob_host,
                data_url=settings.data_url,
                timeout=settings.request_timeout,
            ),
        )

    async def __aenter__(self):
        await self.market_data.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self):
        await self.market_data.close()
        await self.chain.close()
