"""Lakiapu - FastAPI application"""
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from .config import Settings, get_settings
from .database import Database
from .exceptions import register_exception_handlers
from .middleware.logging_middleware import ErrorLoggingMiddleware, RequestLoggingMiddleware
from .middleware.rate_limit import RateLimitMiddleware
from .middleware.request_id_middleware import RequestIdMiddleware
from .routers import api_router
from .services.answer_generation import AnswerGenerator
from .services.chat_metrics import ChatMetrics
from .services.chat_session import ChatSessionService
from .services.feedback_service import FeedbackService
from .services.legal_query import LegalQueryOrchestrator
from .services.retrieval import LegalRetriever, VectorLegalRetriever
from .services.storage_service import LocalStorageProvider, StorageProvider
from .utils.logging_config import setup_logging

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the database on startup and close it on shutdown"""
    settings: Settings = app.state.settings
    setup_logging(settings.log_level, settings.log_dir, "lakiapu")

    database = Database(settings.database_url, echo=False)
    await database.init()
    app.state.database = database
    logger.info("Database ready")
    if not app.state.generator.configured:
        logger.warning("OPENAI_API_KEY is not set; chat answers will fail with AI_NOT_CONFIGURED")

    yield

    await database.close()
    logger.info("Application shut down")


def create_app(
    settings: Settings | None = None,
    *,
    retriever: LegalRetriever | None = None,
    generator: AnswerGenerator | None = None,
    storage: StorageProvider | None = None,
) -> FastAPI:
    """Build the application with its services attached to `app.state`"""
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Finnish legal assistant API: chat sessions, legal source search and answer feedback.",
        version=VERSION,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    retriever = retriever or VectorLegalRetriever(settings)
    generator = generator or AnswerGenerator(settings)
    storage = storage or LocalStorageProvider(
        base_dir=settings.upload_dir,
        api_prefix=f"{settings.api_prefix.rstrip('/')}/uploads",
    )
    orchestrator = LegalQueryOrchestrator(retriever, generator, storage, settings)

    app.state.settings = settings
    app.state.trusted_proxies = list(settings.trusted_proxies)
    app.state.retriever = retriever
    app.state.generator = generator
    app.state.storage = storage
    app.state.orchestrator = orchestrator
    app.state.chat_service = ChatSessionService(orchestrator, settings)
    app.state.feedback_service = FeedbackService()
    app.state.metrics = ChatMetrics()

    register_exception_handlers(app)

    # added last runs first: rate limit is innermost, error logging outermost
    app.add_middleware(
        RateLimitMiddleware,
        requests_per_minute=settings.rate_limit_per_minute,
        requests_per_second=settings.rate_limit_per_second,
        excluded_paths=["/docs", "/redoc", "/openapi.json", "/health", f"{settings.api_prefix}/health"],
        trusted_proxies=settings.trusted_proxies,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(RequestLoggingMiddleware, api_prefix=settings.api_prefix)
    app.add_middleware(ErrorLoggingMiddleware)

    app.include_router(api_router, prefix=settings.api_prefix)

    @app.get("/")
    async def root():
        return {
            "name": settings.app_name,
            "version": VERSION,
            "docs": "/docs",
        }

    @app.get("/health")
    async def health_check():
        return {"status": "healthy"}

    @app.get("/health/detailed")
    async def health_check_detailed(request: Request):
        """Database round trip, AI configuration and chat metrics"""
        checks: dict[str, object] = {}
        report: dict[str, object] = {
            "status": "healthy",
            "timestamp": datetime.now().isoformat(),
            "version": VERSION,
            "checks": checks,
        }

        database: Database | None = getattr(request.app.state, "database", None)
        if database is None:
            report["status"] = "degraded"
            checks["database"] = {"status": "not_initialized"}
        else:
            try:
                start = time.perf_counter()
                await database.ping()
                checks["database"] = {
                    "status": "ok",
                    "response_time_ms": round((time.perf_counter() - start) * 1000, 2),
                }
            except Exception as e:
                logger.exception("health check database ping failed")
                report["status"] = "degraded"
                checks["database"] = {"status": "error", "error": str(e)}

        checks["ai_service"] = {
            "status": "configured" if request.app.state.generator.configured else "not_configured"
        }
        checks["chat"] = request.app.state.metrics.snapshot()
        return report

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("lakiapu.main:app", host="0.0.0.0", port=8000, reload=True)
