# foodconnect/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from foodconnect.core.config import settings
from foodconnect.core.errors import CoreError
from foodconnect.core.logging import setup_logging
from foodconnect.deps import get_notifier, get_repo
from foodconnect.middleware.request_log import RequestLogMiddleware
from foodconnect.routers import dashboard as dashboard_router
from foodconnect.routers import donations as donations_router
from foodconnect.routers import matching as matching_router
from foodconnect.routers import requests as requests_router
from foodconnect.services.expiry import ExpirySweeper

setup_logging(settings.log_level)
logger = logging.getLogger(__name__)


def _resolve(app: FastAPI, dep):
    # honour dependency_overrides outside of request handling too
    return app.dependency_overrides.get(dep, dep)()

@asynccontextmanager
async def lifespan(app: FastAPI):
    repo = _resolve(app, get_repo)
    notifier = _resolve(app, get_notifier)
    await repo.ensure_indexes()

    sweeper = None
    if settings.sweeper_enabled:
        sweeper = ExpirySweeper(repo, settings.sweep_interval_seconds)
        sweeper.start()
    app.state.sweeper = sweeper

    yield

    if sweeper is not None:
        await sweeper.stop()
    await notifier.drain()
    repo.close()


# --- Create app FIRST ---
app = FastAPI(lifespan=lifespan, title="FoodConnect API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLogMiddleware)

@app.exception_handler(CoreError)
async def core_error_handler(request: Request, exc: CoreError):
    return JSONResponse({"detail": exc.message, "error": exc.kind}, status_code=exc.status_code)

# ---------------- Include routers ----------------
app.include_router(donations_router.router)     # /api/donations
app.include_router(matching_router.router)      # /api/match
app.include_router(requests_router.router)      # /api/requests
app.include_router(dashboard_router.router)     # /api/dashboard

# Health
@app.get("/health")
def health():
    return {"ok": True}
