import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import info_router, orders_router, returns_router, tabs_router
from config import settings
from constants import LOGGER_NAME
from gateway import BackendGateway
from services.order_lifecycle_service import build_orchestrator
from services.session_service import open_session

logger = logging.getLogger(LOGGER_NAME)

if settings.allowed_origins == ["*"]:
    allow_origins = ["*"]
else:
    allow_origins = settings.allowed_origins


@asynccontextmanager
async def lifespan(app: FastAPI):
    gateway = BackendGateway(settings.backend_url, timeout=settings.request_timeout_seconds)
    try:
        context = await open_session(gateway, settings)
        app.state.orchestrator = build_orchestrator(gateway, context, settings)
    except Exception as exc:  # pragma: no cover - startup network dependency
        logger.exception("Unable to open backend session: %s", exc)
        app.state.orchestrator = None
    if allow_origins == ["*"]:
        logger.warning(
            "CORS is set to allow all origins with credentials; set ALLOWED_ORIGINS to explicit values for local dev."
        )
    try:
        yield
    finally:
        if gateway.user:
            try:
                await gateway.logout()
            except Exception as exc:  # pragma: no cover - shutdown best effort
                logger.warning("Backend logout failed: %s", exc)
        await gateway.aclose()


app = FastAPI(title="POS Order Orchestrator API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(info_router)
app.include_router(tabs_router)
app.include_router(orders_router)
app.include_router(returns_router)


@app.middleware("http")
async def log_preflight(request, call_next):
    if request.method == "OPTIONS":
        origin = request.headers.get("origin", "")
        logger.info("CORS preflight %s %s origin=%s", request.method, request.url.path, origin)
    response = await call_next(request)
    return response


@app.get("/api/diag/cors")
async def cors_diag():
    return {
        "allow_origins": allow_origins,
        "allow_credentials": True,
    }
