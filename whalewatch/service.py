"""Service container wiring the database, API clients, alerts and jobs together."""

from typing import Optional

from .alerts.dispatcher import AlertDispatcher
from .core.dexscreener import DexScreenerClient
from .core.helius import HeliusClient
from .core.market_data import PriceClient, PumpFunClient, SolanaTrackerClient
from .core.swap import JupiterSwapExecutor
from .core.token_enricher import TokenEnricher
from .jobs.backcheck import RejectedBackcheck
from .jobs.mint_monitor import MintMonitor
from .jobs.rejected_reviewer import RejectedReviewer
from .jobs.whale_frenzy import WhaleFrenzyDetector
from .storage.database import Database
from .utils.config import get_config
from .utils.logger import LoggerMixin
from .utils.metrics import start_metrics_server


class WhaleWatchService(LoggerMixin):
    """
    Owns every long-lived component.

    The HTTP app, the CLI and the scheduler all go through one instance so
    that sessions and the database connection are shared.
    """

    def __init__(self, db_path: Optional[str] = None):
        self.config = get_config()
        self.db = Database(db_path or self.config.database_path)

        # API clients
        self.helius = HeliusClient()
        self.dexscreener = DexScreenerClient()
        self.pumpfun = PumpFunClient()
        self.tracker = SolanaTrackerClient()
        self.price = PriceClient()
        self.swap = JupiterSwapExecutor()

        self.dispatcher = AlertDispatcher()
        self.enricher = TokenEnricher(self.pumpfun, self.dexscreener)

        # Jobs
        self.frenzy = WhaleFrenzyDetector(self.db, self.swap, self.dispatcher)
        self.reviewer = RejectedReviewer(self.db, self.tracker, self.price)
        self.backcheck = RejectedBackcheck(self.db, self.dexscreener)
        self.mint_monitor = MintMonitor(self.db, self.helius, self.enricher, self.dispatcher)

        self.running = False

    async def start(self) -> None:
        """Connect the database and open client sessions."""
        if self.running:
            self.logger.warning("Service already running")
            return

        start_metrics_server()
        await self._initialize_components()
        self.running = True
        self.logger.info("Whale Watch service started")

    async def _initialize_components(self) -> None:
        self.logger.info("Initializing components...")

        await self.db.connect()
        for client in self._clients():
            await client.initialize()
        await self.dispatcher.initialize()

        self.logger.info("All components initialized")

    async def stop(self) -> None:
        """Close sessions and the database."""
        if not self.running:
            return

        self.running = False
        self.logger.info("Stopping service...")

        for client in self._clients():
            await client.close()
        await self.dispatcher.close()
        await self.db.close()

        self.logger.info("Service stopped")

    def _clients(self):
        return (self.helius, self.dexscreener, self.pumpfun, self.tracker, self.price, self.swap)

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop()
