import uuid
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import BaseModel, ValidationError

from app.core.config import settings
from utils.ocr.service import ReceiptOcrService
from utils.s3 import ReceiptImageStorage

reusable_bearer = HTTPBearer(scheme_name="JWT", auto_error=False)


class CurrentUser(BaseModel):
    """Caller identity as asserted by the external identity provider's token."""
    user_id: uuid.UUID
    email: Optional[str] = None
    role: Optional[str] = None


def _unauthorized(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={
            "status": "error",
            "error_code": "authentication_failed",
            "error": message
        },
        headers={"WWW-Authenticate": "Bearer"}
    )


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(reusable_bearer),
) -> CurrentUser:
    if credentials is None or not credentials.credentials:
        raise _unauthorized("Not authenticated")

    if not settings.AUTH_JWT_SECRET:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "status": "error",
                "error_code": "auth_not_configured",
                "error": "Token verification is not configured"
            }
        )

    try:
        options = {"verify_aud": settings.AUTH_JWT_AUDIENCE is not None}
        payload = jwt.decode(
            credentials.credentials,
            settings.AUTH_JWT_SECRET,
            algorithms=[settings.AUTH_JWT_ALGORITHM],
            audience=settings.AUTH_JWT_AUDIENCE,
            options=options,
        )
        return CurrentUser(
            user_id=payload.get("sub"),
            email=payload.get("email"),
            role=payload.get("role"),
        )
    except (JWTError, ValidationError):
        raise _unauthorized("Could not validate credentials")


def get_storage(request: Request) -> ReceiptImageStorage:
    return request.app.state.storage


def get_ocr_service(request: Request) -> ReceiptOcrService:
    return request.app.state.ocr_service
