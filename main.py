import time
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Register models on Base.metadata
import models  # noqa: F401
from core.config import settings
from core.database import Base, engine
from core.logging_config import setup_logging, get_logger
from middleware import RequestIDMiddleware
from routers import auth, profile, rpc, users
from services.exceptions import InternalServiceError, ServiceError
from utils.logger import log_request


setup_logging(
    log_level=settings.LOG_LEVEL,
    log_dir=settings.LOG_DIR,
    file_logging=settings.ENV != "testing"
)

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    logger.info("Application startup complete",
                extra={"event": "startup", "kv_backend": settings.KV_BACKEND})
    yield
    logger.info("Application shutting down", extra={"event": "shutdown"})


app = FastAPI(
    title="User Account Service",
    description="User accounts, login sessions and token validation",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """
    Log every HTTP request with status code and duration.
    """
    start_time = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start_time) * 1000

    log_request(
        logger,
        request.method,
        request.url.path,
        response.status_code,
        duration_ms,
        client_ip=request.client.host if request.client else "unknown"
    )
    return response


# Added last so it wraps the logging middleware
app.add_middleware(RequestIDMiddleware)


@app.get("/health")
async def health_check():
    logger.debug("Health check requested")
    return {"status": "Healthy"}


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    """
    Render service exceptions with the status code they carry.
    """
    if isinstance(exc, InternalServiceError):
        logger.error(
            f"Internal service error: {str(exc)}",
            extra={
                "path": request.url.path,
                "method": request.method
            }
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": InternalServiceError.message}
        )

    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == status.HTTP_401_UNAUTHORIZED else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message},
        headers=headers
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Catch all unhandled exceptions, log them and return a generic 500.
    """
    if isinstance(exc, (HTTPException, RequestValidationError)):
        raise exc

    logger.error(
        f"Unhandled exception: {str(exc)}",
        extra={
            "path": request.url.path,
            "method": request.method,
            "error_type": type(exc).__name__
        },
        exc_info=True
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"}
    )


app.include_router(auth.router)
app.include_router(users.router)
app.include_router(profile.router)
app.include_router(rpc.router)
