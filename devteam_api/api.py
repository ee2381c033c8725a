"""FastAPI application factory for the AI Dev Team API."""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import Settings, get_settings
from .docs import load_openapi_document
from .models import ErrorResponse, HealthResponse, ServiceInfo
from .pipeline import (
    AccessLogStage,
    BodyDecodingStage,
    DocsStage,
    PipelineMiddleware,
    SecurityHeadersStage,
    not_found_response,
)

logger = logging.getLogger(__name__)

SERVICE_NAME = "AI Dev Team API"
SERVICE_VERSION = "1.0.0"


def create_app(settings: Settings | None = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        settings: Optional settings; read from the environment when omitted.

    The OpenAPI description is loaded once here. If it cannot be loaded the
    documentation viewer is left out and every other route keeps working.
    """

    settings = settings or get_settings()

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    # Docs are served by the pipeline from the static description.
    app = FastAPI(
        title=SERVICE_NAME,
        version=SERVICE_VERSION,
        openapi_url=None,
        docs_url=None,
        redoc_url=None,
    )

    document = load_openapi_document(settings.openapi_file)

    app.state.settings = settings
    app.state.docs_enabled = document is not None

    stages = [
        BodyDecodingStage(settings.max_body_bytes),
        SecurityHeadersStage(),
        AccessLogStage(),
    ]
    if document is not None:
        stages.append(DocsStage(settings.docs_path, document))
        logger.info("API documentation available at %s", settings.docs_path)

    app.add_middleware(PipelineMiddleware, stages=stages, dev_mode=settings.is_development)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Unknown paths and unregistered methods are both reported as missing routes."""
        if exc.status_code in (404, 405):
            return not_found_response(request)
        envelope = ErrorResponse(error=str(exc.detail))
        return JSONResponse(
            status_code=exc.status_code,
            content=envelope.model_dump(exclude_none=True),
            headers=exc.headers,
        )

    @app.get("/", response_model=ServiceInfo)
    async def root():
        return ServiceInfo(
            message=SERVICE_NAME,
            version=SERVICE_VERSION,
            documentation=settings.docs_path,
        )

    @app.get(f"{settings.api_prefix}/health", response_model=HealthResponse, tags=["health"])
    async def health_check():
        return HealthResponse()

    return app
