from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import httpx
import logging
from fastapi.exceptions import HTTPException as FastAPIHTTPException
from app.api.routes.api import api_router
from app.core.config import settings
from app.core.errors import OcrNotConfigured, ReceiptServiceError
from app.core.middleware import setup_middleware
from utils.ocr.service import ReceiptOcrService
from utils.s3 import ReceiptImageStorage, get_s3_client
import json
import time
from starlette.responses import Response
from logging.handlers import RotatingFileHandler

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

SENSITIVE_KEYS = [
    'password', 'token', 'secret', 'authorization', 'api_key', 'key',
    'cookie', 'x-ocr-secret', 'x-goog-api-key',
    # signed image links
    'imageurl', 'image_url',
]
def redact_sensitive_data(data):
    if isinstance(data, dict):
        return {
            k: '[REDACTED]' if k.lower() in SENSITIVE_KEYS else redact_sensitive_data(v)
            for k, v in data.items()
        }
    elif isinstance(data, list):
        return [redact_sensitive_data(item) for item in data]
    else:
        return data

# --- Logging Setup ---
def setup_logging():
    logger = logging.getLogger("api_logger")
    logger.setLevel(logging.INFO)
    handler = RotatingFileHandler(settings.LOG_FILE, maxBytes=100000, backupCount=5)
    formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    handler.setFormatter(formatter)
    if not logger.handlers:
        logger.addHandler(handler)
    return logger

logger = setup_logging()


def describe_body(body: bytes, content_type: str) -> str:
    """Loggable rendering of a request/response body; images are never logged."""
    if not body:
        return "N/A"
    try:
        if "application/json" in content_type:
            return json.dumps(redact_sensitive_data(json.loads(body)), ensure_ascii=False)
        if content_type.startswith("multipart/") or content_type.startswith("image/"):
            return f"<{content_type.split(';')[0]} {len(body)} bytes>"
        return body.decode('utf-8')
    except (ValueError, UnicodeDecodeError):
        return "Could not parse body"


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Composition root: clients live as long as the process
    http_client = httpx.AsyncClient(timeout=settings.OCR_TIMEOUT_SECONDS)
    s3_client = get_s3_client(
        region_name=settings.AWS_REGION,
        aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
        aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
    )
    app.state.storage = ReceiptImageStorage(
        s3_client,
        bucket_name=settings.RECEIPT_IMAGES_BUCKET,
        allowed_media_types=settings.ALLOWED_IMAGE_TYPES,
        signed_url_expires=settings.SIGNED_URL_EXPIRE_SECONDS,
    )
    app.state.ocr_service = ReceiptOcrService.from_settings(http_client, settings)
    if not (app.state.ocr_service.vision_configured or app.state.ocr_service.clova_configured):
        logger.warning("No OCR backend configured; uploads will fail with ocr_not_configured")

    try:
        yield
    finally:
        await http_client.aclose()


# Create app
app = FastAPI(
    title=settings.PROJECT_NAME,
    description="API for receipt capture and expense tracking",
    version="1.0.0",
    openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
    # Add base URL to the OpenAPI schema
    servers=[
        {"url": settings.SERVER_HOST or "/", "description": "Default server"}
    ],
    openapi_tags=[
        {"name": "receipts", "description": "Receipt upload, review and management"},
        {"name": "reports", "description": "Monthly and per-category spending reports"},
    ],
)

@app.middleware("http")
async def robust_logging_middleware(request: Request, call_next):
    start_time = time.time()

    # --- Request Logging ---
    request_body_raw = await request.body()
    request_body_log = describe_body(request_body_raw, request.headers.get("content-type", ""))

    logger.info(
        f"--> {request.method} {request.url.path} | "
        f"Headers: {json.dumps(redact_sensitive_data(dict(request.headers)))} | "
        f"Body: {request_body_log}"
    )

    # The `call_next` function processes the request and returns a response
    response = await call_next(request)

    # --- Response Logging ---
    process_time = (time.time() - start_time) * 1000

    # Consume the response body to log it
    response_body_raw = b""
    async for chunk in response.body_iterator:
        response_body_raw += chunk

    response_body_log = describe_body(response_body_raw, response.headers.get("content-type", ""))
    if len(response_body_log) > 1000: # Truncate long bodies
        response_body_log = response_body_log[:1000] + '... (truncated)'

    logger.info(
        f"<-- {response.status_code} ({process_time:.2f}ms) | "
        f"Body: {response_body_log}"
    )

    # Return a new response with the consumed body, so the client gets it
    return Response(
        content=response_body_raw,
        status_code=response.status_code,
        headers=dict(response.headers),
        media_type=response.media_type
    )


@app.exception_handler(ReceiptServiceError)
async def receipt_service_exception_handler(request: Request, exc: ReceiptServiceError):
    # Configuration problems are logged at error level so they can be alerted on
    if isinstance(exc, OcrNotConfigured):
        logger.error(f"OCR not configured: {exc.message} (request {request.url.path})")
    else:
        logger.warning(f"{exc.error_code} for {request.url.path}: {exc.message} {redact_sensitive_data(exc.details) or ''}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Custom exception handler for FastAPI's HTTPException
@app.exception_handler(FastAPIHTTPException)
async def http_exception_handler(request: Request, exc: FastAPIHTTPException):
    logger.error(
        f"HTTPException encountered: Status Code: {exc.status_code}, Detail: {exc.detail}, Request URL: {request.url.path}"
    )
    content = exc.detail if isinstance(exc.detail, dict) else {
        "status": "error",
        "error_code": "http_error",
        "error": str(exc.detail)
    }
    return JSONResponse(
        status_code=exc.status_code,
        content=content,
        headers=exc.headers
    )

# Generic exception handler for unhandled exceptions
@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    # Log the full traceback for any unhandled exceptions
    logger.exception(
        f"Unhandled exception for request: {request.url.path}. Details: {exc}"
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "status": "error",
            "error_code": "server_error",
            "error": "An unexpected server error occurred."
        }
    )

# Set up CORS middleware
if settings.BACKEND_CORS_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[str(origin).rstrip("/") for origin in settings.BACKEND_CORS_ORIGINS],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

# Include router
app.include_router(api_router, prefix=settings.API_V1_PREFIX)

# Set up rate limiting middleware
setup_middleware(app)


# Health check endpoint
@app.get("/health", tags=["health"])
async def health_check():
    return JSONResponse(content={"status": "ok"})


@app.get("/", tags=["root"])
async def root():
    return JSONResponse(
        content={
            "message": "Welcome to the Receipt Ledger API! See /docs for the API documentation."
        }
    )


if __name__ == "__main__":
    import uvicorn

    logger.info("Starting application")
    uvicorn.run("app.main:app", host="0.0.0.0", port=8080, reload=True)
