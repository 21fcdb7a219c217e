"""
Main FastAPI application entry point
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import HTTPException as FastAPIHTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.routes import (account, ai_chat, auth, boats, consents, crew,
                            health, journeys, metrics, notifications,
                            onboarding_sessions, profiles, redirect,
                            registrations)
from app.core.config import get_settings
from app.core.database import get_session_local
from app.core.logging_config import LoggingConfig
from app.core.metrics import set_app_info
from app.core.middleware import LoggingContextMiddleware
from app.core.middleware_metrics import MetricsMiddleware
from app.services.auth_service import AuthService

# Configure logging first
LoggingConfig.configure()

logger = LoggingConfig.get_logger(__name__)

VERSION = health.VERSION


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan events for FastAPI app"""
    settings = get_settings()
    logger.info(f"Starting {settings.app_name} in {settings.app_env} mode...")
    set_app_info(settings.app_name, settings.app_env, VERSION)

    db = get_session_local()()
    try:
        AuthService(db).cleanup_expired_sessions()
    except Exception as e:
        logger.warning(f"Could not clean up expired sessions: {e}", exc_info=True)
    finally:
        db.close()

    yield

    logger.info(f"Shutting down {settings.app_name}...")


_settings = get_settings()
app = FastAPI(
    title=_settings.app_name,
    description="Sailing crew marketplace: boats, journeys, legs, registrations and AI onboarding",
    version=VERSION,
    lifespan=lifespan,
)

# Logging context first so every request carries a request id
app.add_middleware(LoggingContextMiddleware)
app.add_middleware(MetricsMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Log unhandled errors and return them as JSON"""
    if isinstance(exc, FastAPIHTTPException):
        raise exc

    logger.error(
        "Unhandled exception",
        exc_info=exc,
        extra={
            "error": str(exc),
            "error_type": type(exc).__name__,
            "path": request.url.path,
            "method": request.method,
        },
    )
    return JSONResponse(
        status_code=500,
        content={"detail": str(exc), "type": type(exc).__name__},
    )


app.include_router(health.router)
app.include_router(metrics.router)
app.include_router(auth.router)
app.include_router(profiles.router)
app.include_router(boats.router)
app.include_router(journeys.router)
app.include_router(journeys.legs_router)
app.include_router(registrations.router)
app.include_router(notifications.router)
app.include_router(consents.router)
app.include_router(account.router)
app.include_router(crew.router)
app.include_router(redirect.router)
app.include_router(onboarding_sessions.owner_router)
app.include_router(onboarding_sessions.prospect_router)
app.include_router(ai_chat.router)


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(
        "main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.app_env == "development",
    )
