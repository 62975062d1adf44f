from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi_pagination import add_pagination

from app.config import get_settings
from app.exceptions import ChatError
from app.infra.logging_config import LoggingConfig, get_logger
from app.routers.conversations_router import conversations_router
from app.routers.messages_router import messages_router
from app.routers.realtime_router import realtime_router
from app.utils.metrics import get_metrics, get_metrics_content_type

logger = get_logger("app")


async def chat_error_handler(request: Request, exc: ChatError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


def create_app(testing: bool = False) -> FastAPI:
    settings = get_settings()
    if not testing:
        LoggingConfig()

    app = FastAPI(title=settings.app_name)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.app_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(ChatError, chat_error_handler)

    app.include_router(conversations_router)
    app.include_router(messages_router)
    app.include_router(realtime_router)

    @app.get("/health", tags=["System"])
    def health() -> dict:
        return {"status": "ok", "app": settings.app_name, "environment": settings.environment}

    @app.get("/metrics", tags=["System"], include_in_schema=False)
    def metrics() -> Response:
        return Response(content=get_metrics(), media_type=get_metrics_content_type())

    add_pagination(app)
    return app


app = create_app()
