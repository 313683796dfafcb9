# Application entrypoint: configures middleware, error handlers, startup routines, and API routers.
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging
import os

from .db import Base, engine
from .errors import DomainError
from .events import bus, publish_to_redis
from .routes.auth import router as auth_router
from .routes.listings import router as listings_router
from .routes.rental_requests import router as rental_requests_router
from .routes.contracts import router as contracts_router
from .routes.issues import router as issues_router
from .routes.users import router as users_router
from .routes.analytics import router as analytics_router

logger = logging.getLogger("vinhousing.api")


# Parse CORS origins from a comma-separated env var.
# Note: '*' cannot be used with allow_credentials=True; we fall back to explicit localhost origins for dev.
def _parse_cors_origins(env_value: str | None) -> list[str]:
    default_dev_origins = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    if not env_value:
        return default_dev_origins

    origins = [o.strip() for o in env_value.split(",") if o.strip()]
    # Map '*' to explicit localhost origins so credentialed requests remain allowed
    if "*" in origins:
        return default_dev_origins

    return origins


app = FastAPI(title="VinHousing API", version="0.1.0")
allow_list = _parse_cors_origins(os.getenv("CORS_ORIGINS"))

app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DomainError)
def handle_domain_error(request: Request, exc: DomainError) -> JSONResponse:
    content = {"error": exc.message}
    headers = None
    retry_after = getattr(exc, "retry_after", None)
    if retry_after is not None:
        content["retry_after"] = retry_after
        headers = {"Retry-After": str(retry_after)}
    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


# Framework-raised errors (unknown route, wrong method) get the same {"error": ...} body
@app.exception_handler(StarletteHTTPException)
def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)}, headers=exc.headers)


@app.exception_handler(RequestValidationError)
def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Invalid request", "details": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(Exception)
def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("request.failed", extra={"path": request.url.path, "method": request.method})
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error"},
    )


@app.on_event("startup")
def on_startup() -> None:
    # For local SQLite, auto-create tables; production DBs rely on Alembic migrations.
    if os.getenv("DATABASE_URL", "sqlite:///./data.db").startswith("sqlite"):
        Base.metadata.create_all(bind=engine)
    # Fan domain events out to other processes; a no-op when Redis is disabled
    bus.subscribe(publish_to_redis)


# Simple liveness endpoint for container orchestrators and uptime checks
@app.get("/healthz")
def healthz() -> dict:
    return {"status": "ok"}


# Mount application routers (authentication and domain APIs)
app.include_router(auth_router, prefix="/api", tags=["auth"])
app.include_router(listings_router, prefix="/api", tags=["listings"])
app.include_router(rental_requests_router, prefix="/api", tags=["rental-requests"])
app.include_router(contracts_router, prefix="/api", tags=["contracts"])
app.include_router(issues_router, prefix="/api", tags=["issues"])
app.include_router(users_router, prefix="/api", tags=["users"])
app.include_router(analytics_router, prefix="/api", tags=["analytics"])
