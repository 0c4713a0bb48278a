from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .errors import GatewayError, NotFoundError, ValidationError
from .gateways import get_gateway
from .logging_setup import setup_logging
from .routers import categories as categories_router
from .routers import stats as stats_router
from .routers import tasks as tasks_router
from .schemas import error_body
from .settings import Settings, get_settings
from .store import TodoStore

logger = logging.getLogger(__name__)

openapi_tags = [
    {"name": "health", "description": "Service health and status endpoints."},
    {"name": "categories", "description": "Create, rename, recolor and delete task categories."},
    {"name": "tasks", "description": "Tasks and their checklist subtasks, with status derived from subtasks."},
    {"name": "stats", "description": "Dashboard counters."},
]

# Display names for gateway collections in 404 messages.
_ENTITY_NAMES = {"categories": "Category", "tasks": "Task", "subtasks": "Subtask"}


# PUBLIC_INTERFACE
def create_app(store: Optional[TodoStore] = None, settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the application around a task store.

    The store is the composition root's to own: pass one in (tests do) or let
    the configured gateway back a fresh one. A store that has not been loaded
    yet is loaded on startup.
    """
    settings = settings or get_settings()
    setup_logging(settings.log_level)
    if store is None:
        store = TodoStore(get_gateway(settings))

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if not store.loaded:
            store.load()
        if settings.seed_default_categories:
            store.seed_defaults()
        yield
        store.close()

    app = FastAPI(
        title="Taskboard Backend",
        description="Personal task manager: categories, tasks and checklist subtasks over pluggable storage.",
        version="0.1.0",
        openapi_tags=openapi_tags,
        lifespan=lifespan,
    )
    app.state.store = store
    app.state.settings = settings

    # Configure CORS based on settings (.env -> CORS_ALLOW_ORIGINS), with '*' fallback
    allow_all = (settings.cors_allow_origins == ["*"]) or (len(settings.cors_allow_origins) == 0)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if allow_all else settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """
        Return a consistent JSON structure for request validation errors.

        Response format:
            {
                "error": "ValidationError",
                "message": "Request validation failed",
                "detail": [... pydantic/fastapi error details ...]
            }
        """
        return JSONResponse(
            status_code=422,
            content=jsonable_encoder(error_body("ValidationError", "Request validation failed", exc.errors())),
        )

    @app.exception_handler(ValidationError)
    async def store_validation_handler(request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content=jsonable_encoder(error_body("ValidationError", exc.message, exc.errors)),
        )

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        entity = _ENTITY_NAMES.get(exc.entity, exc.entity)
        return JSONResponse(status_code=404, content={"detail": f"{entity} not found"})

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
        # Already logged by the store; the client gets a structured failure to show.
        return JSONResponse(status_code=502, content=error_body("GatewayError", str(exc)))

    # PUBLIC_INTERFACE
    @app.get("/", summary="Health Check", tags=["health"])
    def health_check():
        """
        Health check endpoint.

        Returns:
            A JSON object indicating service health and the persistence backend in use.
        """
        return {"message": "Healthy", "backend": store.gateway.name, "loaded": store.loaded}

    app.include_router(categories_router.router)
    app.include_router(tasks_router.router)
    app.include_router(stats_router.router)

    logger.info("Taskboard app created backend=%s", store.gateway.name)
    return app


app = create_app()
