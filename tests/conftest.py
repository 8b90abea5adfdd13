import uuid
from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from app.core.config import settings
from app.utils.rate_limiter import api_rate_limiter, upload_rate_limiter

TEST_JWT_SECRET = "test-secret"


@pytest.fixture(autouse=True)
def reset_rate_limits():
    api_rate_limiter.reset()
    upload_rate_limiter.reset()
    yield


@pytest.fixture
def user_id():
    return uuid.uuid4()


@pytest.fixture
def jwt_secret(monkeypatch):
    monkeypatch.setattr(settings, "AUTH_JWT_SECRET", TEST_JWT_SECRET)
    monkeypatch.setattr(settings, "AUTH_JWT_ALGORITHM", "HS256")
    monkeypatch.setattr(settings, "AUTH_JWT_AUDIENCE", "authenticated")
    return TEST_JWT_SECRET


def make_token(user_id, secret=TEST_JWT_SECRET, expires_in=timedelta(minutes=5), audience="authenticated"):
    payload = {
        "sub": str(user_id),
        "email": "user@example.com",
        "role": "authenticated",
        "aud": audience,
        "exp": datetime.now(timezone.utc) + expires_in,
    }
    return jwt.encode(payload, secret, algorithm="HS256")


@pytest.fixture
def auth_headers(jwt_secret, user_id):
    return {"Authorization": f"Bearer {make_token(user_id)}"}


@pytest.fixture
def token_factory(jwt_secret):
    return make_token
