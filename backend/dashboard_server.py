import asyncio
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.responses import JSONResponse

from controller import DashboardController, REFRESH_INTERVAL_SECONDS
from fetcher import (
    DASHBOARD_TOWN,
    GEMINI_API_KEY,
    GEMINI_MODEL,
    DataFetcher,
    _make_genai_client,
)
from models import DashboardHealthResponse, DashboardResponse

# Load .env from project root (one level above backend/)
load_dotenv(dotenv_path=Path(__file__).parent.parent / ".env")

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

_controller: DashboardController | None = None
_mount_task: asyncio.Task | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _controller, _mount_task
    try:
        client = _make_genai_client()
        logger.info("Gemini client initialized successfully.")
    except Exception as exc:
        # The fetcher retries on each fetch; until then every fetch fails with BackendError.
        logger.warning("Failed to initialize Gemini client: %s", exc)
        client = None

    _controller = DashboardController(DataFetcher(client=client))
    # Serve requests while the first fetch is still running.
    _mount_task = asyncio.create_task(_controller.mount())
    logger.info("Dashboard controller initialized: town=%r", DASHBOARD_TOWN)
    yield
    if not _mount_task.done():
        _mount_task.cancel()
    try:
        await _mount_task
    except asyncio.CancelledError:
        pass
    _mount_task = None
    await _controller.stop()
    logger.info("Dashboard controller stopped.")


app = FastAPI(
    title="Dashboard Backend",
    description="Weather, river level and astronomy snapshot service for the town dashboard.",
    version="1.0.0",
    lifespan=lifespan,
)


# ── Helpers ──────────────────────────────────────────────────────────────────

def _dashboard_body(controller: DashboardController) -> dict:
    response = DashboardResponse(
        town=DASHBOARD_TOWN,
        state=controller.state,
        cards=controller.view(),
    )
    return response.model_dump(by_alias=True)


def _unavailable() -> JSONResponse:
    logger.error("Dashboard controller not initialized")
    return JSONResponse(status_code=503, content={"error": "A műszerfal szolgáltatás jelenleg nem érhető el."})


# ── Endpoints ────────────────────────────────────────────────────────────────

@app.get("/health", response_model=DashboardHealthResponse)
async def health() -> DashboardHealthResponse:
    return DashboardHealthResponse(
        status="ok",
        model=GEMINI_MODEL,
        api_key_configured=bool(GEMINI_API_KEY),
        refresh_interval=REFRESH_INTERVAL_SECONDS,
    )


@app.get("/dashboard")
async def dashboard():
    if _controller is None:
        return _unavailable()
    return _dashboard_body(_controller)


@app.post("/refresh")
async def refresh():
    logger.info("Incoming POST /refresh")

    if _controller is None:
        return _unavailable()

    try:
        started = await _controller.refresh()
    except Exception:
        logger.error("Unexpected exception in /refresh", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"error": "An unexpected error occurred."},
        )

    if not started:
        return JSONResponse(
            status_code=409,
            content={"error": "A refresh is already in progress."},
        )
    return _dashboard_body(_controller)


if __name__ == "__main__":
    uvicorn.run(
        "dashboard_server:app",
        host="0.0.0.0",
        port=int(os.getenv("DASHBOARD_PORT", "8001")),
        reload=False,
    )
