import base64
import json
import os

import pytest

# Required secrets must exist before yoursai.config.settings is imported
os.environ.setdefault("GOOGLE_API_KEY", "test-google-key")
os.environ.setdefault("MONGO_URI", "mongodb://localhost:27017")
os.environ.setdefault("ENV", "dev")

from yoursai.config.settings import Settings  # noqa: E402


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def make_token(claims) -> str:
    header = _b64url(json.dumps({"alg": "HS256", "typ": "JWT"}).encode())
    payload = _b64url(json.dumps(claims).encode())
    return f"{header}.{payload}.signature"


@pytest.fixture
def jwt():
    return make_token


@pytest.fixture
def bearer():
    def _bearer(sub="user-123"):
        return "Bearer " + make_token({"sub": sub})

    return _bearer


@pytest.fixture
def test_settings(tmp_path):
    return Settings(
        LANCEDB_PATH=tmp_path / "lancedb",
        EMBEDDING_DIMENSION=4,
        API_CALL_DELAY_SECONDS=0,
        INGEST_EMBED_DELAY_SECONDS=0,
        COMPLETION_MAX_ATTEMPTS=3,
        COMPLETION_RETRY_DELAYS=[0.0, 0.0],
    )


@pytest.fixture
def sleep_recorder():
    calls = []

    async def _sleep(seconds):
        calls.append(seconds)

    _sleep.calls = calls
    return _sleep
