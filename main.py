"""
Brand Store Sync - FastAPI Backend
"""
from fastapi import FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi import status
import uvicorn
import logging

from routes.api import register_routes
from app.database import engine, Base
from app.config import settings
from app.services.errors import IntegrationError
import app.models  # noqa: F401  (register tables on Base.metadata)

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Create database tables
Base.metadata.create_all(bind=engine)

app = FastAPI(
    title="Brand Store Sync API",
    description="Store integration and catalog synchronization API",
    version="1.0.0",
    docs_url="/docs" if settings.IS_DEVELOPMENT else None,  # Disable docs in production
    redoc_url="/redoc" if settings.IS_DEVELOPMENT else None,
)

logger.info("Starting Brand Store Sync API")
logger.info("Environment: %s (production=%s)", settings.ENV, settings.IS_PRODUCTION)
if not settings.PROXY_BASE_URL:
    logger.warning("PROXY_BASE_URL is not set; remote listing will always use direct store access.")
if settings.IS_PRODUCTION and settings.JWT_SECRET == "supersecret_fallback_key_change_in_production":
    logger.warning("JWT_SECRET is the default value in production. Set a strong JWT_SECRET in environment.")


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Validation error: {exc.errors()}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "detail": exc.errors(),
            "message": "Validation error: Please check your request format"
        },
    )


@app.exception_handler(IntegrationError)
async def integration_exception_handler(request: Request, exc: IntegrationError):
    """Map integration errors to their HTTP status, keeping the error kind for the UI"""
    if exc.status_code >= 500:
        logger.warning("%s on %s: %s", exc.kind, request.url.path, exc.message)
    content = exc.to_dict()
    content["detail"] = exc.message
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=exc.headers,
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "Internal server error",
            "message": str(exc) if settings.IS_DEVELOPMENT else "An error occurred"
        },
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

register_routes(app, settings)


@app.get("/health")
async def health():
    """Health check endpoint. Includes DB connectivity check."""
    db_status = "ok"
    try:
        from sqlalchemy import text
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning("Health check DB ping failed: %s", e)
        db_status = "error"
    return {
        "status": "ok" if db_status == "ok" else "degraded",
        "service": "api",
        "db": db_status,
        "environment": settings.ENV,
        "proxy": bool(settings.PROXY_BASE_URL),
    }


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.IS_DEVELOPMENT,  # Auto-reload only in development
        log_level=settings.LOG_LEVEL.lower()
    )
