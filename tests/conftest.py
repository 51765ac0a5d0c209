import asyncio
import hashlib
import hmac
import tempfile
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from app.config import Settings
from app.database.db import init_db
from app.database.repository import Repository
from app.llm.client import OllamaClient
from app.main import app
from app.webhook.rate_limiter import RateLimiter
from app.whatsapp.client import WhatsAppClient

TEST_SETTINGS = Settings(
    whatsapp_access_token="test_token",
    whatsapp_phone_number_id="123456",
    whatsapp_verify_token="my_verify_token",
    whatsapp_app_secret="test_secret",
    allowed_phone_numbers=["6281234567890"],
    ollama_base_url="http://localhost:11434",
    ollama_model="test-model",
    database_path=":memory:",
    _env_file=None,
)


@pytest.fixture
def settings() -> Settings:
    return TEST_SETTINGS


# --- Async fixtures for unit tests ---


@pytest.fixture
async def db_connection():
    conn = await init_db(":memory:")
    yield conn
    await conn.close()


@pytest.fixture
async def repository(db_connection):
    return Repository(db_connection)


class FakeEmbedder:
    """Stands in for OllamaClient.embed: returns preset vectors keyed by text."""

    def __init__(self, vectors: dict[str, list[float]] | None = None, default=None):
        self.vectors = vectors or {}
        self.default = default or [0.0, 0.0, 1.0]
        self.calls: list[list[str]] = []

    async def embed(self, texts: list[str], model: str | None = None) -> list[list[float]]:
        self.calls.append(list(texts))
        return [self.vectors.get(t, self.default) for t in texts]


@pytest.fixture
def fake_embedder() -> FakeEmbedder:
    return FakeEmbedder()


# --- Sync fixture for TestClient-based integration tests ---


@pytest.fixture
def client(settings: Settings) -> TestClient:
    mock_response = MagicMock()
    mock_response.status_code = 200
    mock_response.raise_for_status = MagicMock()
    mock_response.json.return_value = {"messages": [{"id": "wamid.out"}]}

    mock_http = AsyncMock()
    mock_http.post = AsyncMock(return_value=mock_response)
    mock_http.get = AsyncMock()

    # Create DB connection for TestClient tests
    tmp_dir = tempfile.mkdtemp()
    db_path = str(Path(tmp_dir) / "test.db")

    conn = asyncio.run(init_db(db_path))
    repository = Repository(conn)

    conversation_router = MagicMock()
    conversation_router.handle = AsyncMock(return_value=["Mock reply"])

    app.state.settings = settings
    app.state.http_client = mock_http
    app.state.whatsapp_client = WhatsAppClient(
        http_client=mock_http,
        access_token=settings.whatsapp_access_token,
        phone_number_id=settings.whatsapp_phone_number_id,
    )
    app.state.ollama_client = OllamaClient(
        http_client=mock_http,
        base_url=settings.ollama_base_url,
        model=settings.ollama_model,
    )
    app.state.repository = repository
    app.state.conversation_router = conversation_router
    app.state.rate_limiter = RateLimiter(
        max_requests=settings.rate_limit_max,
        window_seconds=settings.rate_limit_window,
    )

    yield TestClient(app, raise_server_exceptions=False)

    # Teardown: stop the aiosqlite worker thread to prevent process hang.
    conn.stop()


def make_whatsapp_payload(
    from_number: str = "6281234567890",
    message_id: str = "wamid.test123",
    text: str = "Halo!",
    msg_type: str = "text",
    media_id: str | None = None,
    caption: str | None = None,
) -> dict:
    msg: dict = {
        "from": from_number,
        "id": message_id,
        "timestamp": "1700000000",
        "type": msg_type,
    }
    if msg_type == "text":
        msg["text"] = {"body": text}
    elif msg_type == "image":
        img: dict = {"id": media_id or "image_media_id", "mime_type": "image/jpeg"}
        if caption:
            img["caption"] = caption
        msg["image"] = img
    elif msg_type == "audio":
        msg["audio"] = {"id": media_id or "audio_media_id", "mime_type": "audio/ogg"}

    return {
        "object": "whatsapp_business_account",
        "entry": [
            {
                "id": "BIZ_ID",
                "changes": [
                    {
                        "value": {
                            "messaging_product": "whatsapp",
                            "metadata": {
                                "display_phone_number": "1234567890",
                                "phone_number_id": "123456",
                            },
                            "messages": [msg],
                        },
                        "field": "messages",
                    }
                ],
            }
        ],
    }


def sign_payload(payload_bytes: bytes, secret: str = "test_secret") -> str:
    sig = hmac.new(secret.encode(), payload_bytes, hashlib.sha256).hexdigest()
    return f"sha256={sig}"
