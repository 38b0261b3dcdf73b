import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from app.api.social_inbox import router as social_inbox_router
from app.api.webhooks import router as webhooks_router
from app.config import settings
from app.db import Database
from app.errors import register_error_handlers
from app.logging import configure_logging, get_logger
from app.metrics import REQUEST_COUNT, REQUEST_LATENCY
from app.services.meta_messaging import MetaGraphClient

API_PREFIX = "/api/social-ai-bot"

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if getattr(app.state, "db", None) is None:
        app.state.db = Database.from_url(settings.database_url)
    if getattr(app.state, "graph", None) is None:
        app.state.graph = MetaGraphClient()
    if settings.db_auto_create:
        await app.state.db.create_all()
    logger.info("social_inbox_started graph_base=%s", settings.meta_graph_base_url)
    try:
        yield
    finally:
        await app.state.graph.aclose()
        await app.state.db.dispose()
        logger.info("social_inbox_stopped")


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title="Social Inbox API", lifespan=lifespan)
    app.state.db = None
    app.state.graph = None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        route = request.scope.get("route")
        path = getattr(route, "path", request.url.path)
        labels = {
            "method": request.method,
            "path": path,
            "status": str(response.status_code),
        }
        REQUEST_COUNT.labels(**labels).inc()
        REQUEST_LATENCY.labels(**labels).observe(time.perf_counter() - start)
        return response

    register_error_handlers(app)

    app.include_router(webhooks_router, prefix=API_PREFIX)
    app.include_router(social_inbox_router, prefix=API_PREFIX)

    @app.get("/health")
    async def health_check():
        return {"status": "ok"}

    @app.get("/metrics")
    def metrics():
        data = generate_latest()
        return Response(content=data, media_type=CONTENT_TYPE_LATEST)

    return app


app = create_app()
