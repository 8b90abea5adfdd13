import base64
import logging
from typing import Optional

import httpx

from app.core.errors import OcrBackendUnavailable, OcrNotConfigured
from utils.ocr.responses import GOOGLE_VISION, VisionTextResponse

logger = logging.getLogger(__name__)

VISION_ANNOTATE_URL = "https://vision.googleapis.com/v1/images:annotate"


class GoogleVisionClient:
    """General-purpose text detection: raw text plus a page confidence, no receipt fields."""

    name = GOOGLE_VISION

    def __init__(self, http_client: httpx.AsyncClient, api_key: Optional[str], timeout: float = 30.0,
                 url: str = VISION_ANNOTATE_URL):
        self.http_client = http_client
        self.api_key = api_key
        self.timeout = timeout
        self.url = url

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def annotate(self, image: bytes) -> VisionTextResponse:
        """
        Send one image to the TEXT_DETECTION feature.

        Raises:
            OcrNotConfigured: If no API key is set (checked before any request).
            OcrBackendUnavailable: On network errors or a non-success answer.
        """
        if not self.is_configured:
            raise OcrNotConfigured("Google Vision API key is not configured (GOOGLE_VISION_API_KEY)")

        request_body = {
            "requests": [{
                "image": {"content": base64.b64encode(image).decode("utf-8")},
                "features": [{"type": "TEXT_DETECTION", "maxResults": 1}],
                "imageContext": {"languageHints": ["ko", "en"]},
            }]
        }
        # Key goes in a header so it never shows up in logged URLs
        headers = {"X-Goog-Api-Key": self.api_key}

        try:
            response = await self.http_client.post(self.url, json=request_body, headers=headers, timeout=self.timeout)
        except httpx.HTTPError as e:
            logger.error(f"Google Vision request failed: {e.__class__.__name__}: {str(e)}")
            raise OcrBackendUnavailable("Google Vision is unreachable", backend=self.name,
                                        details={"error": str(e)}) from e

        if response.status_code != 200:
            logger.error(f"Google Vision API error {response.status_code}: {response.text[:500]}")
            raise OcrBackendUnavailable(f"Google Vision returned HTTP {response.status_code}", backend=self.name)

        try:
            payload = response.json()
        except ValueError:
            logger.warning("Google Vision returned a non-JSON body")
            return VisionTextResponse(payload=None)

        if not isinstance(payload, dict):
            return VisionTextResponse(payload=None)

        responses = payload.get("responses")
        if isinstance(responses, list) and responses and isinstance(responses[0], dict):
            error = responses[0].get("error")
            if error:
                message = error.get("message", "Unknown error") if isinstance(error, dict) else str(error)
                logger.error(f"Google Vision annotate error: {message}")
                raise OcrBackendUnavailable(f"Google Vision error: {message}", backend=self.name)

        return VisionTextResponse(payload=payload)
