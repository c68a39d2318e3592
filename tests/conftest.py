"""
Shared test configuration
Environment required before edumatch settings are imported
"""

import os

os.environ.setdefault("SECRET_KEY", "test-secret-key-with-at-least-32-characters")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("MINIO_ENDPOINT", "localhost:9000")
os.environ.setdefault("STORAGE_BUCKET", "edumatch-files")

from datetime import datetime, timedelta

import pytest
from jose import jwt

from edumatch.core.config import settings


@pytest.fixture
def make_access_token():
    """Mint access tokens shaped like the session service's"""
    def mint(claims, expires_delta=timedelta(minutes=15)):
        payload = dict(claims)
        payload.update({"exp": datetime.utcnow() + expires_delta, "type": "access"})
        return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)
    return mint
