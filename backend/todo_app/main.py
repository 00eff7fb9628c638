"""
Todo Premium - FastAPI Application

Main entry point for the backend API.
Provides endpoints for todos, subscriptions and Stripe webhooks.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from todo_app.config.settings import settings
from todo_app.infrastructure.exceptions import (
    AuthenticationError,
    BillingProviderError,
    NotFoundError,
    TodoAppError,
    UsageLimitError,
    ValidationError,
)

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    logger.info(f"Todo Premium Backend starting in {settings.environment} mode...")

    if settings.database_url:
        try:
            from todo_app.infrastructure.db.database import init_db
            await init_db()
            logger.info("SQLModel database connection pool initialized")
        except Exception as e:
            logger.warning(f"SQLModel database initialization skipped: {e}")

    yield

    if settings.database_url:
        try:
            from todo_app.infrastructure.db.database import close_db
            await close_db()
            logger.info("SQLModel database connection pool closed")
        except Exception as e:
            logger.warning(f"SQLModel database shutdown error: {e}")

    logger.info("Todo Premium Backend shutting down...")


app = FastAPI(
    title="Todo Premium",
    description="Todo list with a paid premium tier billed through Stripe",
    version="1.0.0",
    lifespan=lifespan,
    debug=settings.debug,
)

# CORS configuration from Settings
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# Exception Handlers
# ============================================================================

@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    """Handle validation errors."""
    return JSONResponse(
        status_code=400,
        content=exc.to_dict(),
    )


@app.exception_handler(AuthenticationError)
async def authentication_error_handler(request: Request, exc: AuthenticationError):
    """Handle missing or invalid credentials."""
    return JSONResponse(
        status_code=401,
        content=exc.to_dict(),
        headers={"WWW-Authenticate": "Bearer"},
    )


@app.exception_handler(UsageLimitError)
async def usage_limit_error_handler(request: Request, exc: UsageLimitError):
    """Handle tier limit errors."""
    return JSONResponse(
        status_code=402,
        content=exc.to_dict(),
    )


@app.exception_handler(NotFoundError)
async def not_found_error_handler(request: Request, exc: NotFoundError):
    """Handle not found errors."""
    return JSONResponse(
        status_code=404,
        content=exc.to_dict(),
    )


@app.exception_handler(BillingProviderError)
async def billing_provider_error_handler(request: Request, exc: BillingProviderError):
    """Handle Stripe failures; only the provider's user-facing text is returned."""
    return JSONResponse(
        status_code=502,
        content={
            "error": exc.__class__.__name__,
            "message": exc.user_message,
            "details": exc.details,
        },
    )


@app.exception_handler(TodoAppError)
async def general_error_handler(request: Request, exc: TodoAppError):
    """Handle all other application errors."""
    logger.error(f"Unhandled application error on {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=500,
        content=exc.to_dict(),
    )


# ============================================================================
# Health Check
# ============================================================================

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "todo-premium"}


# ============================================================================
# Import and register routers
# ============================================================================

from todo_app.api.routes import subscriptions, todos, webhooks  # noqa: E402

app.include_router(todos.router, prefix="/api", tags=["Todos"])
app.include_router(subscriptions.router, prefix="/api", tags=["Subscriptions"])
app.include_router(webhooks.router, prefix="/api", tags=["Webhooks"])
