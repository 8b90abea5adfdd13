from fastapi import FastAPI, Request, Response, status
from fastapi.responses import JSONResponse
import logging
from typing import Callable

from app.utils.rate_limiter import api_rate_limiter, upload_rate_limiter

logger = logging.getLogger(__name__)


async def rate_limit_middleware(request: Request, call_next: Callable) -> Response:
    """
    Middleware to apply rate limiting
    """
    # Get IP address from request
    client_ip = request.client.host if request.client else "unknown"
    
    # Uploads trigger a paid OCR call, so they get a tighter budget
    path = request.url.path
    
    if request.method == "POST" and path.rstrip("/").endswith("/receipts/upload"):
        limiter = upload_rate_limiter
        key = f"upload:{client_ip}"
    else:
        limiter = api_rate_limiter
        key = f"api:{client_ip}"
    
    # Check if request should be rate limited
    is_limited, retry_after = limiter.is_rate_limited(key)
    
    if is_limited:
        logger.warning(f"Rate limited request from {client_ip} to {path}")
        return JSONResponse(
            content={
                "status": "error",
                "error_code": "rate_limit_exceeded",
                "error": "Too many requests, please try again later"
            },
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            headers={"Retry-After": str(retry_after)}
        )
    
    return await call_next(request)


def setup_middleware(app: FastAPI) -> None:
    """
    Setup all middleware for the application
    """
    app.middleware("http")(rate_limit_middleware)
