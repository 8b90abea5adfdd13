from typing import Any, Dict, Optional

from fastapi import status


class ReceiptServiceError(Exception):
    """Base class for failures surfaced to the caller as a typed error body.

    Attributes:
        error_code: Stable machine-readable code, e.g. ``ocr_not_configured``.
        status_code: HTTP status used when the error reaches a route.
        message: Human-readable message, returned verbatim.
        details: Optional diagnostic payload (never contains credentials).
    """
    error_code = "server_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        body = {
            "status": "error",
            "error_code": self.error_code,
            "error": self.message,
        }
        if self.details:
            body["details"] = self.details
        return body


class UnsupportedMediaType(ReceiptServiceError):
    error_code = "unsupported_media_type"
    status_code = status.HTTP_415_UNSUPPORTED_MEDIA_TYPE


class StorageWriteFailed(ReceiptServiceError):
    error_code = "storage_write_failed"
    status_code = status.HTTP_502_BAD_GATEWAY


class OcrNotConfigured(ReceiptServiceError):
    error_code = "ocr_not_configured"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class OcrBackendUnavailable(ReceiptServiceError):
    error_code = "ocr_backend_unavailable"
    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(self, message: str, backend: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.backend = backend
