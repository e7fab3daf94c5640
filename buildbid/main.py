from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from buildbid.api.middleware import RequestLogMiddleware
from buildbid.api.v1.router import v1_router
from buildbid.common.exceptions import BuildBidException
from buildbid.common.logging import get_logger, setup_logging
from buildbid.config import settings
from buildbid.integrations.stripe_client import StripeClient

logger = get_logger("main")

# Codes for plain HTTPExceptions raised by the framework itself
HTTP_STATUS_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    402: "PAYMENT_REQUIRED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "BAD_REQUEST",
    409: "CONFLICT",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info("BuildBid API starting (env=%s)", settings.APP_ENV)
    yield


app = FastAPI(
    title="BuildBid API",
    description="Marketplace connecting homeowners and contractors",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS
origins = settings.ALLOWED_ORIGINS.split(",") if settings.ALLOWED_ORIGINS != "*" else ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLogMiddleware)


# --- Error envelope ---


@app.exception_handler(BuildBidException)
async def buildbid_exception_handler(request: Request, exc: BuildBidException):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "code": exc.code},
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "detail": exc.detail,
            "code": HTTP_STATUS_CODES.get(exc.status_code, "INTERNAL_SERVER_ERROR"),
        },
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = jsonable_encoder(exc.errors(), custom_encoder={ValueError: str})
    first = errors[0] if errors else {}
    return JSONResponse(
        status_code=400,
        content={
            "detail": first.get("msg", "Invalid request"),
            "code": "BAD_REQUEST",
            "errors": errors,
        },
    )


# API routes
app.include_router(v1_router, prefix="/api/v1")


@app.get("/health")
async def health_check():
    payments_ok = await StripeClient().health_check()
    return {
        "status": "healthy" if payments_ok else "degraded",
        "payments": "ok" if payments_ok else "unreachable",
        "service": "buildbid",
        "version": "1.0.0",
        "env": settings.APP_ENV,
    }
