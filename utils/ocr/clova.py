import json
import time
import uuid
import logging
from typing import Optional

import httpx

from app.core.errors import OcrBackendUnavailable, OcrNotConfigured
from utils.ocr.responses import CLOVA_RECEIPT, ClovaReceiptResponse

logger = logging.getLogger(__name__)

IMAGE_FORMATS = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/heic": "heic",
    "image/heif": "heic",
    "image/webp": "webp",
    "image/gif": "gif",
}


class ClovaReceiptClient:
    """Receipt-specialized OCR; besides text it returns its own store/total/date fields."""

    name = CLOVA_RECEIPT

    def __init__(self, http_client: httpx.AsyncClient, api_url: Optional[str], secret_key: Optional[str],
                 timeout: float = 30.0):
        self.http_client = http_client
        self.api_url = api_url
        self.secret_key = secret_key
        self.timeout = timeout

    @property
    def is_configured(self) -> bool:
        return bool(self.api_url and self.secret_key)

    def build_message(self, media_type: Optional[str]) -> dict:
        image_format = IMAGE_FORMATS.get((media_type or "").lower(), "jpg")
        return {
            "version": "V2",
            "requestId": str(uuid.uuid4()),
            "timestamp": int(round(time.time() * 1000)),
            "images": [{"format": image_format, "name": "receipt"}],
        }

    async def analyze(self, image: bytes, media_type: Optional[str] = None,
                      filename: Optional[str] = None) -> ClovaReceiptResponse:
        """
        Send one image as multipart form: a JSON ``message`` part and the raw ``file``.

        Raises:
            OcrNotConfigured: If the invoke URL or secret is missing (checked before any request).
            OcrBackendUnavailable: On network errors or a non-success answer.
        """
        if not self.is_configured:
            raise OcrNotConfigured("CLOVA OCR is not configured (CLOVA_OCR_API_URL, CLOVA_OCR_SECRET_KEY)")

        message = self.build_message(media_type)
        files = {"file": (filename or "receipt", image, media_type or "application/octet-stream")}
        data = {"message": json.dumps(message)}
        headers = {"X-OCR-SECRET": self.secret_key}

        logger.debug(f"CLOVA OCR request {message['requestId']} ({len(image)} bytes, format {message['images'][0]['format']})")
        try:
            response = await self.http_client.post(self.api_url, headers=headers, data=data, files=files,
                                                   timeout=self.timeout)
        except httpx.HTTPError as e:
            logger.error(f"CLOVA OCR request failed: {e.__class__.__name__}: {str(e)}")
            raise OcrBackendUnavailable("CLOVA OCR is unreachable", backend=self.name,
                                        details={"error": str(e)}) from e

        if response.status_code != 200:
            logger.error(f"CLOVA OCR API error {response.status_code}: {response.text[:500]}")
            raise OcrBackendUnavailable(f"CLOVA OCR returned HTTP {response.status_code}", backend=self.name)

        try:
            payload = response.json()
        except ValueError:
            logger.warning("CLOVA OCR returned a non-JSON body")
            return ClovaReceiptResponse(payload=None)

        return ClovaReceiptResponse(payload=payload if isinstance(payload, dict) else None)
