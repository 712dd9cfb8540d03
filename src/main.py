import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.docs import get_redoc_html, get_swagger_ui_html
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.router import api_router
from core.config import get_settings
from core.error_handler import (
    ExceptionNormalizationMiddleware,
    global_exception_handler,
    setup_logging,
)
from core.middleware import CorrelationIdMiddleware
from services.video.frames import decoder_available


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    setup_logging()
    settings = get_settings()
    # Missing model credentials must stop startup
    settings.require_model_credentials()
    if not decoder_available(settings):
        logger.warning(
            "ffmpeg/ffprobe not found; video uploads will receive placeholder grades"
        )
    logger.info(
        "%s started (environment=%s, provider=%s, model=%s)",
        settings.APP_NAME,
        settings.ENVIRONMENT,
        settings.LLM_PROVIDER,
        settings.VISION_MODEL,
    )
    yield


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title=f"{settings.APP_NAME} API",
        description="Laptop condition grading from photos and videos",
        version="0.1.0",
        docs_url=None,  # Mounted under /api/docs below
        redoc_url=None,
        lifespan=lifespan,
    )

    app.add_exception_handler(StarletteHTTPException, global_exception_handler)
    app.add_exception_handler(RequestValidationError, global_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    app.add_middleware(ExceptionNormalizationMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=settings.ALLOW_CREDENTIALS,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(CorrelationIdMiddleware)

    app.include_router(api_router, prefix="/api")

    @app.get("/api/docs", include_in_schema=False)
    def custom_swagger_ui_html():
        return get_swagger_ui_html(
            openapi_url="/openapi.json", title=f"{settings.APP_NAME} API Docs"
        )

    @app.get("/api/redoc", include_in_schema=False)
    def redoc_html():
        return get_redoc_html(
            openapi_url="/openapi.json", title=f"{settings.APP_NAME} API Redoc"
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
