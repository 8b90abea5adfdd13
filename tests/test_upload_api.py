"""End-to-end tests for the HTTP surface with storage and OCR swapped out."""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError
from fastapi.testclient import TestClient

from app.api.dependencies import get_ocr_service, get_storage
from app.core.config import settings
from app.core.db import get_db
from app.core.errors import OcrBackendUnavailable
from app.main import app
from schemas.ocr import OcrHints, OcrOutcome
from utils.ocr.responses import CLOVA_RECEIPT
from utils.ocr.service import ReceiptOcrService
from utils.s3 import ReceiptImageStorage

UPLOAD_URL = f"{settings.API_V1_PREFIX}/receipts/upload"
SIGNED_URL = "https://receipt-images.s3.amazonaws.com/signed?X-Amz-Expires=300"
JPEG = b"\xff\xd8\xff\xe0" + b"0" * 256

client = TestClient(app)


class FakeOcrService:
    def __init__(self, outcome=None, error=None):
        self.outcome = outcome
        self.error = error
        self.calls = []

    async def recognize(self, image, media_type=None, filename=None):
        self.calls.append((image, media_type, filename))
        if self.error:
            raise self.error
        return self.outcome


@pytest.fixture
def s3_client():
    s3_client = MagicMock()
    s3_client.generate_presigned_url.return_value = SIGNED_URL
    return s3_client


@pytest.fixture
def ocr_service():
    return FakeOcrService(outcome=OcrOutcome(
        raw_text="이마트 성수점\n2024-03-15 14:30:22\n합계 12,345",
        confidence=91,
        hints=OcrHints(store_name="이마트"),
        backend=CLOVA_RECEIPT,
    ))


@pytest.fixture(autouse=True)
def overrides(s3_client, ocr_service):
    storage = ReceiptImageStorage(s3_client, "receipt-images", settings.ALLOWED_IMAGE_TYPES)

    async def no_db():
        yield None

    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_ocr_service] = lambda: ocr_service
    app.dependency_overrides[get_db] = no_db
    yield
    app.dependency_overrides.clear()


def upload(headers, content=JPEG, media_type="image/jpeg", filename="receipt.jpg"):
    return client.post(UPLOAD_URL, files={"image": (filename, content, media_type)}, headers=headers)


class TestAuthentication:
    def test_missing_token(self, jwt_secret, s3_client, ocr_service):
        response = upload(headers={})
        assert response.status_code == 401
        assert response.json()["error_code"] == "authentication_failed"
        s3_client.put_object.assert_not_called()
        assert ocr_service.calls == []

    def test_bad_signature(self, user_id, token_factory, s3_client, ocr_service):
        token = token_factory(user_id, secret="someone-elses-secret")
        response = upload(headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401
        s3_client.put_object.assert_not_called()
        assert ocr_service.calls == []

    def test_expired_token(self, user_id, token_factory):
        token = token_factory(user_id, expires_in=timedelta(minutes=-5))
        assert upload(headers={"Authorization": f"Bearer {token}"}).status_code == 401

    def test_wrong_audience(self, user_id, token_factory):
        token = token_factory(user_id, audience="anon")
        assert upload(headers={"Authorization": f"Bearer {token}"}).status_code == 401

    def test_subject_must_be_a_user_id(self, token_factory):
        token = token_factory("not-a-uuid")
        assert upload(headers={"Authorization": f"Bearer {token}"}).status_code == 401

    def test_verification_not_configured(self, monkeypatch, user_id):
        monkeypatch.setattr(settings, "AUTH_JWT_SECRET", "")
        response = client.post(
            UPLOAD_URL, files={"image": ("r.jpg", JPEG, "image/jpeg")}, headers={"Authorization": "Bearer x.y.z"}
        )
        assert response.status_code == 503
        assert response.json()["error_code"] == "auth_not_configured"


class TestUpload:
    def test_happy_path(self, auth_headers, user_id, s3_client, ocr_service):
        response = upload(auth_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["imagePath"].startswith(f"{user_id}/")
        assert body["imagePath"].endswith(".jpg")
        assert body["imageUrl"] == SIGNED_URL
        assert body["storeName"] == "이마트"
        assert body["totalAmount"] == 12345
        assert body["date"] == "2024-03-15"
        assert body["time"] == "14:30:22"
        assert body["text"].startswith("이마트 성수점")
        assert body["confidence"] == 91

        s3_client.put_object.assert_called_once()
        assert s3_client.put_object.call_args.kwargs["Body"] == JPEG
        assert ocr_service.calls == [(JPEG, "image/jpeg", "receipt.jpg")]

    def test_unsupported_media_type(self, auth_headers, s3_client, ocr_service):
        response = upload(auth_headers, content=b"%PDF-1.7", media_type="application/pdf", filename="r.pdf")
        assert response.status_code == 415
        assert response.json()["error_code"] == "unsupported_media_type"
        assert response.json()["status"] == "error"
        s3_client.put_object.assert_not_called()
        assert ocr_service.calls == []

    def test_storage_failure(self, auth_headers, s3_client, ocr_service):
        s3_client.put_object.side_effect = ClientError(
            {"Error": {"Code": "InternalError", "Message": "We encountered an internal error"}}, "PutObject"
        )
        response = upload(auth_headers)
        assert response.status_code == 502
        assert response.json()["error_code"] == "storage_write_failed"
        assert ocr_service.calls == []

    def test_no_ocr_backend_configured(self, auth_headers, user_id, s3_client):
        app.dependency_overrides[get_ocr_service] = lambda: ReceiptOcrService()
        response = upload(auth_headers)
        assert response.status_code == 503
        body = response.json()
        assert body["error_code"] == "ocr_not_configured"
        assert body["details"]["imagePath"].startswith(f"{user_id}/")
        assert body["details"]["imageUrl"] == SIGNED_URL
        s3_client.put_object.assert_called_once()

    def test_ocr_backend_unavailable(self, auth_headers, user_id, ocr_service):
        ocr_service.error = OcrBackendUnavailable("CLOVA OCR returned HTTP 500", backend=CLOVA_RECEIPT)
        response = upload(auth_headers)
        assert response.status_code == 502
        body = response.json()
        assert body["error_code"] == "ocr_backend_unavailable"
        assert body["error"] == "CLOVA OCR returned HTTP 500"
        assert body["details"]["imagePath"].startswith(f"{user_id}/")
        assert body["details"]["imageUrl"] == SIGNED_URL

    def test_blank_ocr_text(self, auth_headers, ocr_service):
        ocr_service.outcome = OcrOutcome.empty(CLOVA_RECEIPT)
        body = upload(auth_headers).json()
        assert body["text"] == ""
        assert body["confidence"] == 0
        assert body["storeName"] is None
        assert body["date"] is None

    def test_upload_rate_limit(self, auth_headers):
        for _ in range(10):
            assert upload(auth_headers).status_code == 200
        response = upload(auth_headers)
        assert response.status_code == 429
        assert response.json()["error_code"] == "rate_limit_exceeded"
        assert int(response.headers["Retry-After"]) >= 1


class TestReceiptValidation:
    def test_image_must_belong_to_caller(self, auth_headers):
        response = client.post(
            f"{settings.API_V1_PREFIX}/receipts",
            json={"image_path": "someone-else/20240315-abc.jpg", "receipt_date": "2024-03-15"},
            headers=auth_headers,
        )
        assert response.status_code == 400
        assert response.json()["error_code"] == "validation_error"

    def test_total_above_column_limit(self, auth_headers, user_id):
        response = client.post(
            f"{settings.API_V1_PREFIX}/receipts",
            json={"image_path": f"{user_id}/20240315-abc.jpg", "total_amount": 8801234567890},
            headers=auth_headers,
        )
        assert response.status_code == 422

    def test_category_report_rejects_inverted_range(self, auth_headers):
        response = client.get(
            f"{settings.API_V1_PREFIX}/reports/categories",
            params={"from_date": "2024-04-01", "to_date": "2024-03-01"},
            headers=auth_headers,
        )
        assert response.status_code == 400


def test_health():
    assert client.get("/health").json() == {"status": "ok"}
