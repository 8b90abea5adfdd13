"""Receipt and report routes run against an in-memory session double."""

import uuid
from datetime import date, datetime, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError
from fastapi.testclient import TestClient
from sqlalchemy.dialects import postgresql

from app.api.dependencies import get_storage
from app.core.config import settings
from app.core.db import get_db
from app.main import app
from app.models.receipt import Receipt
from utils.s3 import ReceiptImageStorage

RECEIPTS_URL = f"{settings.API_V1_PREFIX}/receipts"
REPORTS_URL = f"{settings.API_V1_PREFIX}/reports"
SIGNED_URL = "https://receipt-images.s3.amazonaws.com/signed?X-Amz-Expires=300"

client = TestClient(app)


class FakeResult:
    def __init__(self, rows):
        self.rows = list(rows)

    def scalars(self):
        return self

    def first(self):
        return self.rows[0] if self.rows else None

    def all(self):
        return list(self.rows)

    def scalar(self):
        return self.rows[0] if self.rows else None


class FakeSession:
    """Answers each execute() with the next canned row list and records what the route did."""

    def __init__(self, *results):
        self.results = list(results)
        self.statements = []
        self.added = []
        self.deleted = []
        self.commits = 0

    async def execute(self, statement):
        self.statements.append(statement)
        return FakeResult(self.results.pop(0) if self.results else [])

    def add(self, obj):
        self.added.append(obj)

    async def delete(self, obj):
        self.deleted.append(obj)

    async def commit(self):
        self.commits += 1

    async def refresh(self, obj):
        if obj.receipt_id is None:
            obj.receipt_id = uuid.uuid4()
        if obj.created_at is None:
            obj.created_at = datetime.now(timezone.utc)


def use_session(*results):
    session = FakeSession(*results)

    async def fake_db():
        yield session

    app.dependency_overrides[get_db] = fake_db
    return session


def bound_values(statement):
    return list(statement.compile(dialect=postgresql.dialect()).params.values())


def compiled_sql(statement):
    return str(statement.compile(dialect=postgresql.dialect()))


def make_receipt(user_id, **overrides):
    values = dict(
        receipt_id=uuid.uuid4(),
        user_id=user_id,
        image_path=f"{user_id}/20240315120000-abc.jpg",
        store_name="스타벅스 강남점",
        total_amount=4500,
        receipt_date=date(2024, 3, 15),
        category="food",
        description=None,
        raw_text="스타벅스 강남점\n합계 4,500",
        created_at=datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc),
        updated_at=None,
    )
    values.update(overrides)
    return Receipt(**values)


def report_row(**values):
    return SimpleNamespace(_mapping=values)


@pytest.fixture
def s3_client():
    s3_client = MagicMock()
    s3_client.generate_presigned_url.return_value = SIGNED_URL
    return s3_client


@pytest.fixture(autouse=True)
def overrides(s3_client):
    storage = ReceiptImageStorage(s3_client, "receipt-images", settings.ALLOWED_IMAGE_TYPES)
    app.dependency_overrides[get_storage] = lambda: storage
    yield
    app.dependency_overrides.clear()


class TestOwnership:
    def test_other_users_receipt_is_not_found(self, auth_headers, user_id):
        session = use_session([])
        response = client.get(f"{RECEIPTS_URL}/{uuid.uuid4()}", headers=auth_headers)

        assert response.status_code == 404
        assert response.json()["error_code"] == "resource_not_found"
        assert user_id in bound_values(session.statements[0])

    def test_get_own_receipt(self, auth_headers, user_id):
        receipt = make_receipt(user_id)
        use_session([receipt])
        response = client.get(f"{RECEIPTS_URL}/{receipt.receipt_id}", headers=auth_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["store_name"] == "스타벅스 강남점"
        assert body["image_url"] == SIGNED_URL

    def test_delete_other_users_receipt(self, auth_headers, s3_client):
        session = use_session([])
        response = client.delete(f"{RECEIPTS_URL}/{uuid.uuid4()}", headers=auth_headers)

        assert response.status_code == 404
        assert session.deleted == []
        s3_client.delete_object.assert_not_called()


class TestCreate:
    def test_category_defaults_to_misc(self, auth_headers, user_id):
        session = use_session()
        response = client.post(
            RECEIPTS_URL,
            json={
                "image_path": f"{user_id}/20240315120000-abc.jpg",
                "store_name": "GS25",
                "total_amount": 3000,
                "receipt_date": "2024-03-15",
            },
            headers=auth_headers,
        )

        assert response.status_code == 201
        body = response.json()
        assert body["category"] == "misc"
        assert body["image_url"] == SIGNED_URL
        assert session.added[0].user_id == user_id
        assert session.commits == 1


class TestUpdate:
    def test_only_sent_fields_change(self, auth_headers, user_id):
        receipt = make_receipt(user_id)
        session = use_session([receipt])
        response = client.put(f"{RECEIPTS_URL}/{receipt.receipt_id}", json={"total_amount": 5000}, headers=auth_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["total_amount"] == 5000
        assert body["store_name"] == "스타벅스 강남점"
        assert body["category"] == "food"
        assert session.commits == 1

    def test_blank_category_becomes_default(self, auth_headers, user_id):
        receipt = make_receipt(user_id)
        use_session([receipt])
        response = client.put(f"{RECEIPTS_URL}/{receipt.receipt_id}", json={"category": ""}, headers=auth_headers)
        assert response.json()["category"] == "misc"

    def test_total_above_column_limit(self, auth_headers, user_id):
        receipt = make_receipt(user_id)
        session = use_session([receipt])
        response = client.put(
            f"{RECEIPTS_URL}/{receipt.receipt_id}", json={"total_amount": 8801234567890}, headers=auth_headers
        )
        assert response.status_code == 422
        assert session.commits == 0
        assert receipt.total_amount == 4500


class TestDelete:
    def test_deletes_row_and_image(self, auth_headers, user_id, s3_client):
        receipt = make_receipt(user_id)
        session = use_session([receipt])
        response = client.delete(f"{RECEIPTS_URL}/{receipt.receipt_id}", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["status"] == "success"
        assert session.deleted == [receipt]
        s3_client.delete_object.assert_called_once_with(Bucket="receipt-images", Key=receipt.image_path)

    def test_failed_image_delete_leaves_orphan(self, auth_headers, user_id, s3_client):
        s3_client.delete_object.side_effect = ClientError(
            {"Error": {"Code": "InternalError", "Message": "We encountered an internal error"}}, "DeleteObject"
        )
        receipt = make_receipt(user_id)
        session = use_session([receipt])
        response = client.delete(f"{RECEIPTS_URL}/{receipt.receipt_id}", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["status"] == "success"
        assert session.deleted == [receipt]
        assert session.commits == 1


class TestList:
    def test_pagination(self, auth_headers, user_id):
        receipts = [make_receipt(user_id), make_receipt(user_id, store_name="GS25")]
        session = use_session([5], receipts)
        response = client.get(RECEIPTS_URL, params={"page": 2, "limit": 2}, headers=auth_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["pagination"] == {"total_count": 5, "page": 2, "limit": 2, "total_pages": 3}
        assert [item["store_name"] for item in body["receipts"]] == ["스타벅스 강남점", "GS25"]
        assert all(item["image_url"] == SIGNED_URL for item in body["receipts"])
        assert "ORDER BY receipts.receipt_date DESC, receipts.created_at DESC" in compiled_sql(session.statements[1])

    def test_filters(self, auth_headers, user_id):
        session = use_session([0], [])
        response = client.get(
            RECEIPTS_URL,
            params={"text": "스타벅스", "category": "food", "min_amount": 1000, "year": 2024, "month": 2},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.json()["pagination"]["total_pages"] == 0
        count_query = session.statements[0]
        assert "ILIKE" in compiled_sql(count_query)
        values = bound_values(count_query)
        assert user_id in values
        assert "%스타벅스%" in values
        assert "food" in values
        assert 1000 in values
        assert date(2024, 2, 1) in values
        assert date(2024, 2, 29) in values

    def test_categories(self, auth_headers):
        use_session([["food", "misc"]])
        response = client.get(f"{RECEIPTS_URL}/categories", headers=auth_headers)
        assert response.json() == {"categories": ["food", "misc"]}


class TestReports:
    def test_monthly(self, auth_headers):
        use_session([
            report_row(receipt_date=date(2024, 3, 2), total_amount=12000, category="food"),
            report_row(receipt_date=date(2024, 3, 9), total_amount=3000, category=None),
        ])
        response = client.get(f"{REPORTS_URL}/monthly", params={"year": 2024, "month": 3}, headers=auth_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["period"]["label"] == "2024-03"
        assert body["period"]["end_date"] == "2024-03-31"
        assert (body["total_amount"], body["total_count"], body["average_amount"]) == (15000, 2, 7500.0)
        assert body["categories"] == {"food": {"amount": 12000, "count": 1}, "misc": {"amount": 3000, "count": 1}}

    def test_months_newest_first(self, auth_headers):
        use_session([
            report_row(receipt_date=date(2024, 2, 2), total_amount=1000),
            report_row(receipt_date=date(2024, 3, 2), total_amount=2000),
            report_row(receipt_date=date(2024, 3, 5), total_amount=500),
        ])
        response = client.get(f"{REPORTS_URL}/months", headers=auth_headers)
        assert response.json()["months"] == [
            {"month": "2024-03", "total_amount": 2500, "count": 2},
            {"month": "2024-02", "total_amount": 1000, "count": 1},
        ]
