import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.middleware.base import BaseHTTPMiddleware

from .settings import settings, DATABASE_URL
from .errors import TechStoreError, techstore_error_handler, request_validation_error_handler
from .rate_limit import limiter
from .users import router as users_router
from .products import router as products_router
from .orders import router as orders_router
from .tracking import router as tracking_router
from . import db


# Lifespan context manager for startup/shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application startup and shutdown."""
    if DATABASE_URL:
        try:
            await db.init_pool()
            await db.apply_schema()
            print("[startup] Database pool initialized and schema applied")
        except Exception as e:
            print(f"[startup] WARNING: Failed to initialize database: {e}")
            print("[startup] Storage-backed endpoints will respond 503 until restart")
    else:
        print("[startup] No DATABASE_URL configured - running without database")

    yield

    await db.close_pool()


app = FastAPI(
    title="TechStore API",
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_exception_handler(TechStoreError, techstore_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_error_handler)

app.include_router(users_router)
app.include_router(products_router)
app.include_router(orders_router)
app.include_router(tracking_router)

# CORS configuration from settings
# If no origins configured, allow the local storefront for development
allowed_origins = settings.allowed_origins if settings.allowed_origins else [
    "http://localhost:3000",
    "http://localhost:5000",
    "http://127.0.0.1:5000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT"],
    allow_headers=["Content-Type", "Authorization", "X-API-Key", "X-Request-Id"],
)


def _get_or_create_request_id(request: Request) -> str:
    """Get request ID from header or generate one."""
    return request.headers.get("X-Request-Id") or str(uuid.uuid4())


class RequestLogMiddleware(BaseHTTPMiddleware):
    """Tag every response with X-Request-Id and log one line per request."""

    async def dispatch(self, request: Request, call_next):
        request_id = _get_or_create_request_id(request)
        start_time = time.time()
        request.state.request_id = request_id

        response = await call_next(request)

        duration_ms = int((time.time() - start_time) * 1000)
        print(
            f"[request] method={request.method} path={request.url.path} "
            f"status={response.status_code} duration_ms={duration_ms} request_id={request_id}"
        )
        response.headers["X-Request-Id"] = request_id
        return response


app.add_middleware(RequestLogMiddleware)


# Server version for health checks
SERVER_VERSION = "1.0.0"


@app.get("/health")
async def health():
    """
    Health check endpoint - no authentication required.
    Used by load balancers and orchestrators.
    """
    database = "unconfigured"
    if db.is_ready():
        try:
            database = "connected" if await db.ping() else "unavailable"
        except Exception:
            database = "unavailable"
    return {
        "status": "ok",
        "version": SERVER_VERSION,
        "database": database,
        "timestamp": int(time.time()),
    }


@app.get("/api")
def api_root():
    return {"message": "TechStore API is running"}


def cli():
    import uvicorn
    uvicorn.run("techstore.main:app", host="0.0.0.0", port=8000, reload=settings.debug)


if __name__ == "__main__":
    cli()
