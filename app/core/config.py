from typing import List, Optional, Union

from pydantic import AnyHttpUrl, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    API_V1_PREFIX: str = "/api/v1"
    PROJECT_NAME: str = "receipt-ledger-api"
    BACKEND_CORS_ORIGINS: List[AnyHttpUrl] = ["http://localhost:3000"]
    SERVER_HOST: Optional[str] = None
    LOG_FILE: str = "api.log"

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> Union[List[str], str]:
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",")]
        elif isinstance(v, (list, str)):
            return v
        raise ValueError(v)

    # Identity provider (tokens are issued externally, we only verify them)
    AUTH_JWT_SECRET: str = ""
    AUTH_JWT_ALGORITHM: str = "HS256"
    AUTH_JWT_AUDIENCE: Optional[str] = "authenticated"

    # Database
    DATABASE_URL: str = "postgresql+asyncpg://localhost:5432/receipts"
    DATABASE_ECHO: bool = False

    # AWS Configuration
    AWS_ACCESS_KEY_ID: Optional[str] = None
    AWS_SECRET_ACCESS_KEY: Optional[str] = None
    AWS_REGION: str = "ap-northeast-2"
    RECEIPT_IMAGES_BUCKET: str = "receipts"
    SIGNED_URL_EXPIRE_SECONDS: int = 300
    ALLOWED_IMAGE_TYPES: List[str] = ["image/jpeg", "image/png", "image/webp", "image/heic"]

    @field_validator("ALLOWED_IMAGE_TYPES", mode="before")
    def assemble_image_types(cls, v: Union[str, List[str]]) -> List[str]:
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip().lower() for i in v.split(",") if i.strip()]
        return v

    # OCR backends
    GOOGLE_VISION_API_KEY: Optional[str] = None
    CLOVA_OCR_API_URL: Optional[str] = None
    CLOVA_OCR_SECRET_KEY: Optional[str] = None
    OCR_TIMEOUT_SECONDS: float = 30.0

    DEFAULT_CATEGORY: str = "misc"

    class Config:
        case_sensitive = True
        env_file = ".env"


settings = Settings()
