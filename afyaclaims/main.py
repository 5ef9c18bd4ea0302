"""
AfyaClaims Adjudication Core

FastAPI application entry point.
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from afyaclaims import __version__
from afyaclaims.api import router as core_router
from afyaclaims.config import Settings, get_settings
from afyaclaims.core.errors import AdjudicationError
from afyaclaims.services import ServiceContainer, build_services

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle management."""
    logger.info("Starting AfyaClaims adjudication core")
    yield
    logger.info("Shutting down AfyaClaims adjudication core")


async def adjudication_error_handler(request: Request, exc: AdjudicationError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


async def http_error_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if errors:
        first = errors[0]
        field_path = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{field_path}: {first.get('msg')}" if field_path else first.get("msg")
    else:
        message = "Invalid request"
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": message})


def create_app(settings: Optional[Settings] = None, services: Optional[ServiceContainer] = None) -> FastAPI:
    """Build the application around one service container."""
    settings = settings or (services.settings if services else get_settings())

    app = FastAPI(
        title="AfyaClaims Adjudication Core",
        description="""
    Policy and claims adjudication for a health micro-insurance platform.

    ## Features

    - **Policies**: Enrollment by tier (msingi, kati, juu, familia) and lifecycle PENDING → ACTIVE ⇄ LAPSED → CANCELLED
    - **Claims**: Submitted PENDING against an active policy, adjudicated once by an admin
    - **Ledger**: Approved claims carry a transaction hash from the ledger
    - **Audit Trail**: Every state-changing operation appends one immutable record
    - **Notifications**: Per-user inbox with role broadcasts
    """,
        version=__version__,
        lifespan=lifespan
    )
    app.state.services = services or build_services(settings)

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[origin.strip() for origin in settings.CORS_ORIGINS.split(",")],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(AdjudicationError, adjudication_error_handler)
    app.add_exception_handler(HTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    # Include routers
    app.include_router(core_router)

    @app.get("/", tags=["root"])
    async def root():
        """Root endpoint with system info."""
        return {
            "system": "AfyaClaims Adjudication Core",
            "version": __version__,
            "status": "operational",
            "docs": "/docs"
        }

    @app.get("/health", tags=["health"])
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy"}

    return app


app = create_app()


def run() -> None:
    import uvicorn

    uvicorn.run("afyaclaims.main:app", host="0.0.0.0", port=8000)


if __name__ == "__main__":
    run()
