from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .errors import ChoreError, IntegrityError, NotFoundError
from .repositories import Repository, get_repository
from .routers import instances as instances_router
from .routers import payouts as payouts_router
from .routers import templates as templates_router
from .services import ChoreService
from .settings import Settings, get_settings

logger = logging.getLogger(__name__)

openapi_tags = [
    {"name": "health", "description": "Service health and status endpoints."},
    {
        "name": "templates",
        "description": "Chore templates: create with a first batch of instances, edit amount, deactivate, delete.",
    },
    {
        "name": "instances",
        "description": "Dated chore instances: due lists, completion toggles and completed history.",
    },
    {"name": "payouts", "description": "Payouts and earnings statistics."},
]


def configure_logging(level: str) -> None:
    """Install a root handler once; later calls only adjust the level."""
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
    logging.getLogger("chore_api").setLevel(level)


def _status_for(exc: ChoreError) -> int:
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, IntegrityError):
        return 409
    return 400


# PUBLIC_INTERFACE
def create_app(
    settings: Optional[Settings] = None,
    repository: Optional[Repository] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Settings to use; read from the environment when omitted.
        repository: Storage backend; built from settings when omitted.
        clock: Source of "now" for completion stamps, payouts and "today".
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    repo = repository or get_repository(settings)

    app = FastAPI(
        title="Chore Allowance Backend",
        description="Track recurring chores, completions and allowance payouts.",
        version="0.1.0",
        openapi_tags=openapi_tags,
    )
    app.state.settings = settings
    app.state.service = ChoreService(repo, clock=clock, generation_count=settings.generation_count)

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
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """
        Return a consistent JSON structure for request validation errors.

        Response format:
            {
                "error": "ValidationError",
                "detail": [... pydantic/fastapi error details ...],
                "message": "Request validation failed"
            }
        """
        return JSONResponse(
            status_code=422,
            content={
                "error": "ValidationError",
                "message": "Request validation failed",
                "detail": jsonable_errors(exc),
            },
        )

    @app.exception_handler(ChoreError)
    async def chore_error_handler(request: Request, exc: ChoreError) -> JSONResponse:
        """Map domain errors to 400/404/409 with {"error": code, "message": text}."""
        status_code = _status_for(exc)
        logger.info("%s %s -> %d %s", request.method, request.url.path, status_code, exc)
        return JSONResponse(
            status_code=status_code,
            content={"error": exc.code.value, "message": exc.message},
        )

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={"error": "InternalError", "message": "Internal server error"},
        )

    # PUBLIC_INTERFACE
    @app.get("/", summary="Health Check", tags=["health"])
    def health_check():
        """
        Health check endpoint.

        Returns:
            A JSON object indicating service health.
        """
        return {"message": "Healthy", "backend": repo.backend_name}

    app.include_router(templates_router.router)
    app.include_router(instances_router.router)
    app.include_router(payouts_router.router)
    return app


def jsonable_errors(exc: RequestValidationError) -> list:
    """Validation error details with exception objects in their context stringified."""
    return jsonable_encoder(exc.errors(), custom_encoder={Exception: str})


app = create_app()
