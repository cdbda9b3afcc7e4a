"""
Main FastAPI application
Quiz attempt lifecycle service: start, proctor, resume, submit and grade
"""
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request, HTTPException
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
import logging
import time

from app.config import settings
from app.database import engine, init_db
from app.errors import LMSError
from app.api import attempts, quizzes, students
from app.utils.cache import CacheService, get_cache_service
from app.utils.rate_limiter import rate_limiter

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

UNLIMITED_PATHS = {"/health", "/docs", "/redoc", "/openapi.json"}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables before serving; log shutdown"""
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    try:
        init_db()
    except SQLAlchemyError as e:
        logger.error(f"Failed to initialize database: {str(e)}")
        raise
    logger.info("Application startup complete")

    yield

    logger.info("Shutting down application")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Quiz attempt lifecycle backend: attempts, proctoring signals, supervised resume and grading",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def rate_limit_middleware(request: Request, call_next):
    """Per-actor throttling for everything except health and docs"""
    if request.url.path not in UNLIMITED_PATHS:
        try:
            await rate_limiter.check_rate_limit(request)
        except HTTPException as e:
            return JSONResponse(status_code=e.status_code, content=e.detail)

    return await call_next(request)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000

    logger.info(f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.1f}ms)")
    return response


def _error_body(error: str, message, status_code: int) -> dict:
    return {"error": error, "message": message, "status_code": status_code}


@app.exception_handler(LMSError)
async def lms_error_handler(request: Request, exc: LMSError):
    """Map lifecycle failures onto their HTTP status"""
    logger.info(f"{request.method} {request.url.path} rejected: {exc.error} - {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.error, exc.message, exc.status_code),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    body = _error_body("validation_error", "Request payload is invalid", 422)
    body["detail"] = jsonable_encoder(exc.errors())
    return JSONResponse(status_code=422, content=body)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body("http_error", exc.detail, exc.status_code),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Last resort: never leak internals unless DEBUG is on"""
    logger.error(f"Unhandled exception on {request.method} {request.url.path}: {str(exc)}", exc_info=True)

    body = _error_body("internal_server_error", "An unexpected error occurred. Please try again later.", 500)
    body["detail"] = str(exc) if settings.DEBUG else None
    return JSONResponse(status_code=500, content=body)


@app.get("/health")
def health_check(cache: CacheService = Depends(get_cache_service)):
    """Liveness plus dependency status; 503 when the database is unreachable"""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        database = "ok"
    except SQLAlchemyError as e:
        logger.error(f"Health check database probe failed: {str(e)}")
        database = "unavailable"

    healthy = database == "ok"
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={
            "status": "healthy" if healthy else "unhealthy",
            "service": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "database": database,
            "cache": "enabled" if cache.enabled else "disabled",
            "timestamp": time.time(),
        },
    )


@app.get("/")
async def root():
    return {
        "message": "Quiz Attempt Lifecycle API",
        "version": settings.APP_VERSION,
        "endpoints": {
            "quizzes": "/api/quizzes",
            "attempts": "/api/attempts",
            "students": "/api/students",
        },
        "docs": "/docs",
        "health": "/health",
    }


app.include_router(quizzes.router)
app.include_router(attempts.router)
app.include_router(students.router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG
    )
