# ─────────────────────────────────────────────────────────────────────────────
# FastAPI Application Factory + Lifespan
# ─────────────────────────────────────────────────────────────────────────────
# Entrypoint: uvicorn pinboard.main:create_app --factory --host 0.0.0.0 --port 8080
# The --factory flag tells uvicorn to call create_app() for the app instance.
# ─────────────────────────────────────────────────────────────────────────────

from contextlib import asynccontextmanager

import httpx
import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from openai import AsyncOpenAI
from slowapi.errors import RateLimitExceeded
from starlette.requests import Request
from starlette.responses import JSONResponse

from pinboard.auth import APIKeyMiddleware
from pinboard.config import Settings, get_settings
from pinboard.exceptions import register_exception_handlers
from pinboard.logging_config import configure_logging
from pinboard.middleware import RequestContextMiddleware
from pinboard.rate_limit import limiter
from pinboard.routes import ai, health, pins
from pinboard.services.ai_images import AIImageGenerator
from pinboard.services.labeler import AutoLabeler, LabelCatalog
from pinboard.services.pins import PinOrchestrator
from pinboard.services.relocator import ImageRelocator
from pinboard.services.scanner import BrokenLinkScanner
from pinboard.services.tasks import BackgroundTaskRunner
from pinboard.storage.object_storage import ObjectStorage
from pinboard.store.documents import DocumentStore

logger = structlog.get_logger(__name__)


async def _rate_limit_exceeded_handler(
    request: Request, exc: RateLimitExceeded
) -> JSONResponse:
    """Return a structured JSON 429 consistent with PinboardError responses."""
    logger.warning(
        "rate_limit_exceeded",
        path=request.url.path,
        method=request.method,
        detail=str(exc.detail),
    )
    return JSONResponse(
        status_code=429,
        content={"error": f"Rate limit exceeded: {exc.detail}", "type": "RateLimitExceeded"},
    )


def _configure_otel(exporter_type: str) -> None:
    """Configure OpenTelemetry tracing. Only "console" is built in."""
    if exporter_type != "console":
        logger.warning("unknown_otel_exporter", exporter=exporter_type)
        return

    from opentelemetry import trace
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter

    provider = TracerProvider()
    provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
    trace.set_tracer_provider(provider)
    logger.info("otel_configured", exporter=exporter_type)


def _openai_client(settings: Settings) -> AsyncOpenAI:
    api_key = settings.openai_api_key.get_secret_value()
    if not api_key:
        # The client refuses to build without a key; calls made with the
        # placeholder fail and degrade like any other service error.
        logger.warning("openai_api_key_missing", effect="labeling and AI images disabled")
        api_key = "unset"
    return AsyncOpenAI(api_key=api_key, timeout=settings.http_timeout_seconds * 3)


def init_state(
    app: FastAPI,
    settings: Settings,
    *,
    store: DocumentStore,
    storage: ObjectStorage,
    http: httpx.AsyncClient,
    openai_client: AsyncOpenAI,
) -> None:
    """Wire the services together and store them on app.state.

    Accessed via dependency functions in dependencies.py. Tests call this
    directly with fakes because ASGITransport does not run the lifespan.
    """
    tasks = BackgroundTaskRunner()
    relocator = ImageRelocator(storage, http, store.pin_links)
    catalog = LabelCatalog(store.tags, cache_size=settings.label_cache_size)
    labeler = AutoLabeler(
        openai_client,
        catalog,
        model=settings.vision_model,
        max_labels=settings.max_labels,
    )

    app.state.settings = settings
    app.state.document_store = store
    app.state.object_storage = storage
    app.state.http_client = http
    app.state.background_tasks = tasks
    app.state.pin_orchestrator = PinOrchestrator(
        store.pins, relocator, labeler, tasks, settings
    )
    app.state.ai_image_generator = AIImageGenerator(openai_client, store.ai_images, settings)
    app.state.link_scanner = BrokenLinkScanner(
        store.pins, http, concurrency=settings.scan_concurrency
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage startup and shutdown lifecycle.

    Clients and services are created here and stored in app.state for
    injection via Depends(). On shutdown, outstanding enrichment tasks are
    drained before the clients they use are closed.
    """
    settings = get_settings()

    if settings.otel_exporter:
        _configure_otel(settings.otel_exporter)

    store = DocumentStore(settings.mongodb_url, settings.mongodb_database)
    await store.connect()

    storage = ObjectStorage(
        bucket_name=settings.storage_bucket,
        credentials_file=settings.storage_credentials_file,
        cdn_base_url=settings.cdn_base_url,
    )
    await storage.connect()

    http = httpx.AsyncClient(timeout=settings.http_timeout_seconds)
    openai_client = _openai_client(settings)

    init_state(
        app,
        settings,
        store=store,
        storage=storage,
        http=http,
        openai_client=openai_client,
    )
    logger.info(
        "startup_complete",
        store_connected=store.is_connected,
        storage_configured=storage.is_configured,
    )

    yield  # App is running, serving requests

    # Shutdown
    await app.state.background_tasks.drain()
    await http.aclose()
    await openai_client.close()
    await storage.disconnect()
    await store.disconnect()


def _parse_origins(allowed_origins: str) -> list[str]:
    """Parse comma-separated origin string into a list.

    Returns ``["*"]`` if the input is empty (development mode).
    """
    if not allowed_origins.strip():
        return ["*"]
    return [origin.strip() for origin in allowed_origins.split(",") if origin.strip()]


def create_app() -> FastAPI:
    """Application factory. Invoked by: uvicorn pinboard.main:create_app --factory"""
    settings = get_settings()
    configure_logging(log_level=settings.log_level, json_output=settings.log_json)

    app = FastAPI(
        title="Pinboard",
        description="Image pin sharing with relocation, labeling and AI images",
        version="0.1.0",
        lifespan=lifespan,
    )

    # ── Attach rate limiter to app state (required by slowapi) ───────────────
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # ── Middleware stack ─────────────────────────────────────────────────────
    # Starlette applies middleware in reverse order of add_middleware calls.
    # Incoming request order: CORS → APIKey → RequestContext → route handler

    app.add_middleware(RequestContextMiddleware)

    api_key_value = settings.api_key.get_secret_value()
    if api_key_value:
        app.add_middleware(APIKeyMiddleware, api_key=api_key_value)
        logger.info("api_key_auth_enabled")
    else:
        logger.warning("api_key_auth_disabled", reason="API_KEY env var not set")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_parse_origins(settings.allowed_origins),
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "X-API-Key", "X-User-Id", "X-User-Name", "X-User-Service"],
    )

    # ── Exception handlers ───────────────────────────────────────────────────
    register_exception_handlers(app)

    # ── Routes ───────────────────────────────────────────────────────────────
    app.include_router(health.router, tags=["health"])
    app.include_router(pins.router, tags=["pins"])
    app.include_router(ai.router, tags=["ai"])

    return app
