import logging
import sys
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic_core import _pydantic_core
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request

from api.di.container import ApplicationContainer as DependencyContainer
from core.logging import configure_logging
from core.settings import SETTINGS

configure_logging(SETTINGS.APP)

logger = logging.getLogger("meditrack")


class CustomFastAPI(FastAPI):
    container: DependencyContainer


@asynccontextmanager
async def lifespan(_app: CustomFastAPI):
    logger.info("Starting application initialization...")
    start_time = time.time()

    try:
        if SETTINGS.CHAT.CHAT_STORE_BACKEND == "sql":
            logger.info("Initializing database connection...")
            db_start = time.time()
            from api.shared.entities.registry import BaseEntity

            db_resource = _app.container.infrastructure.database()
            await db_resource.init()
            await db_resource.create_schema(BaseEntity)
            logger.info(
                f"Database ready in {time.time() - db_start:.2f}s"
            )

        # Build the store eagerly so it lives for the whole process
        _app.container.services.conversation_manager()
        logger.info(
            f"Conversation store '{SETTINGS.CHAT.CHAT_STORE_BACKEND}', "
            f"inference backend '{SETTINGS.INFERENCE.backend_name}'"
        )
        logger.info(
            f"Application startup completed in {time.time() - start_time:.2f}s"
        )
    except Exception as e:
        logger.exception(f"Failed to initialize application: {str(e)}")
        raise

    yield

    try:
        db_resource = _app.container.infrastructure.database()
        if db_resource:
            await db_resource.shutdown()
        logger.info("Application shutdown complete")
    except Exception:
        logger.exception("Error during shutdown")


def create_fastapi_app() -> CustomFastAPI:
    _app = CustomFastAPI(
        title="MediTrack Assistant API",
        description="Clinical chatbot conversations backed by a local medical model",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Initialize dependency container
    _app.container = DependencyContainer()
    _app.container.infrastructure.config.from_dict(SETTINGS.model_dump())
    _app.container.wire(modules=[sys.modules[__name__]])
    _app.container.init_resources()

    _app.add_middleware(
        CORSMiddleware,
        allow_origins=SETTINGS.APP.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include feature routers
    from api.features.conversation.router import router as chatbot_router

    _app.include_router(chatbot_router, prefix="/api/v1/chatbot", tags=["Chatbot"])

    return _app


app = create_fastapi_app()


# Health check endpoints
@app.get("/")
async def root():
    return {"message": "MediTrack Assistant API is running", "status": "ok"}


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/ready")
async def ready():
    return {"status": "ok"}


# Exception handlers
@app.exception_handler(404)
async def not_found_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=404,
        content={
            "error": "Not Found",
            "detail": getattr(exc, "detail", "Not Found"),
            "status_code": 404,
        },
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content={"error": "Validation Error", "detail": str(exc), "status_code": 422},
    )


@app.exception_handler(_pydantic_core.ValidationError)
async def pydantic_validation_handler(
    request: Request, exc: _pydantic_core.ValidationError
):
    return JSONResponse(
        status_code=422,
        content={"error": "Validation Error", "detail": str(exc), "status_code": 422},
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception: %s", exc)
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal Server Error",
            "detail": "An unexpected error occurred",
            "status_code": 500,
        },
    )
