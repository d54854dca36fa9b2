import asyncio
import logging
import os
from pathlib import Path
from typing import Callable

from dotenv import load_dotenv

from fetcher import DataFetcher, FetchError, QuotaExceededError
from models import CardView, DashboardState
from view import build_cards

# Load .env from project root (one level above backend/)
load_dotenv(dotenv_path=Path(__file__).parent.parent / ".env")

REFRESH_INTERVAL_SECONDS = int(os.getenv("REFRESH_INTERVAL_SECONDS", "900"))

FAILURE_MESSAGE = "Nem sikerült az adatok betöltése. Kérjük, próbálja újra később."

logger = logging.getLogger(__name__)


class DashboardController:
    """Owns the dashboard state and decides when the fetcher runs.

    At most one fetch is in flight at a time: a trigger (timer or manual)
    that arrives while a fetch is outstanding is dropped. A failed fetch
    replaces the displayed state with the generic failure message, also
    during background refreshes.
    """

    def __init__(
        self,
        fetcher: DataFetcher,
        interval: int = REFRESH_INTERVAL_SECONDS,
        on_change: Callable[[DashboardState], None] | None = None,
    ):
        self.fetcher = fetcher
        self.interval = interval
        self.on_change = on_change
        self._state = DashboardState(status="loading")
        self._timer: asyncio.Task | None = None

    @property
    def state(self) -> DashboardState:
        return self._state

    @property
    def refreshing(self) -> bool:
        return self._state.refreshing

    def _set_state(self, state: DashboardState) -> None:
        self._state = state
        logger.info("Dashboard state: status=%s, refreshing=%s", state.status, state.refreshing)
        if self.on_change is not None:
            try:
                self.on_change(state)
            except Exception:
                logger.error("State change callback failed", exc_info=True)

    async def load_data(self) -> bool:
        """Run one fetch and transition. Returns False if a fetch was already in flight."""
        if self._state.refreshing:
            logger.info("Fetch already in flight; trigger dropped.")
            return False

        self._set_state(self._state.model_copy(update={"refreshing": True}))
        try:
            snapshot = await self.fetcher.fetch()
        except asyncio.CancelledError:
            self._set_state(self._state.model_copy(update={"refreshing": False}))
            raise
        except QuotaExceededError as exc:
            logger.error("Fetch failed: quota exceeded: %s (%s)", exc, exc.user_message)
            self._set_state(DashboardState(status="failed", error=FAILURE_MESSAGE))
        except FetchError as exc:
            logger.error("Fetch failed: %s: %s", type(exc).__name__, exc)
            self._set_state(DashboardState(status="failed", error=FAILURE_MESSAGE))
        except Exception:
            logger.error("Unexpected exception during fetch", exc_info=True)
            self._set_state(DashboardState(status="failed", error=FAILURE_MESSAGE))
        else:
            logger.info("Snapshot accepted: last_updated=%s", snapshot.last_updated)
            self._set_state(DashboardState(status="ready", snapshot=snapshot))
        return True

    async def refresh(self) -> bool:
        """Manual refresh. After a failure there is nothing to keep on screen, so show loading."""
        if self._state.refreshing:
            logger.info("Manual refresh ignored; fetch already in flight.")
            return False
        if self._state.status == "failed":
            self._set_state(DashboardState(status="loading"))
        return await self.load_data()

    async def mount(self) -> None:
        if self._state.status != "loading":
            self._set_state(DashboardState(status="loading"))
        await self.load_data()
        self.start()

    def start(self) -> None:
        if self._timer is None or self._timer.done():
            self._timer = asyncio.create_task(self._run_timer())
            logger.info("Refresh timer started: interval=%ds", self.interval)

    async def _run_timer(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.load_data()
            except Exception:
                logger.error("Unexpected exception in refresh timer", exc_info=True)

    async def stop(self) -> None:
        if self._timer is None:
            return
        self._timer.cancel()
        try:
            await self._timer
        except asyncio.CancelledError:
            pass
        self._timer = None
        logger.info("Refresh timer stopped.")

    def view(self) -> list[CardView]:
        return build_cards(self._state.snapshot)
