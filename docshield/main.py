import logging

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from docshield.api.middleware.logging import RequestLoggingMiddleware
from docshield.api.routes.scan import router as scan_router
from docshield.config import Settings, get_settings
from docshield.core.document_extractor import DocumentExtractor
from docshield.core.pipeline import ScanPipeline
from docshield.core.redaction import RedactionEngine
from docshield.core.scanner import Scanner
from docshield.core.session import ScanSession

logger = logging.getLogger(__name__)


def build_pipeline(settings: Settings) -> ScanPipeline:
    """Wire extractor, scanner and redaction engine from *settings*."""
    phrases = settings.resolved_phrases()
    return ScanPipeline(
        extractor=DocumentExtractor(max_workers=settings.extractor_max_workers),
        scanner=Scanner.from_settings(settings, phrases=phrases),
        redaction_engine=RedactionEngine(phrases, token=settings.redaction_token),
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    app = FastAPI(
        title="DocShield API",
        description="Prompt-injection and hidden-text scanner for documents",
        version="1.0.0",
        docs_url="/v1/docs",
        openapi_url="/v1/openapi.json",
        debug=settings.debug,
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.include_router(scan_router)

    pipeline = build_pipeline(settings)
    app.state.settings = settings
    app.state.session = ScanSession(pipeline)

    @app.get("/healthz", tags=["health"])
    async def health_check() -> JSONResponse:
        return JSONResponse({"status": "ok"})

    @app.on_event("startup")
    async def startup_event() -> None:
        logger.info(
            "DocShield API starting up (environment=%s, phrases=%d)",
            settings.environment,
            len(pipeline.phrases),
        )

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        app.state.session.reset()
        pipeline.shutdown()
        logger.info("DocShield API shutting down")

    return app


app = create_app()
