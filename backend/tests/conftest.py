"""
Pytest configuration and fixtures for annotation service tests.
"""

from __future__ import annotations

import json
import os

# Set test environment variables before importing config
os.environ["TESTING"] = "true"
os.environ.setdefault("ANTHROPIC_API_KEY", "test-anthropic-key")

import httpx  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402

from backend.main import app  # noqa: E402
from backend.routes.annotate import get_content_store, get_llm  # noqa: E402
from backend.services.content_store import ContentStore  # noqa: E402

SAMPLE_TUTORIAL = {
    "id": "vectors",
    "title": "Vector Projection",
    "state": {"angle": 45},
    "content": {
        "type": "div",
        "children": [
            {
                "type": "Section",
                "props": {"title": "Intro"},
                "children": [
                    {"type": "p", "children": "A projection drops one vector onto another."},
                    {"type": "p", "children": "The dot product measures alignment."},
                ],
            },
            {"type": "p", "children": "Closing thoughts on orthogonality."},
        ],
    },
}


class FakeLLM:
    """Records prompts and returns a canned reply (or raises)."""

    def __init__(self, reply: str = "A short explanation.", error: Exception | None = None):
        self.reply = reply
        self.error = error
        self.calls: list[tuple[str, str]] = []

    async def complete(self, system: str, prompt: str) -> str:
        self.calls.append((system, prompt))
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.fixture
def content_dir(tmp_path):
    (tmp_path / "vectors.json").write_text(json.dumps(SAMPLE_TUTORIAL))
    return tmp_path


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest_asyncio.fixture
async def async_client(content_dir, fake_llm):
    """Async HTTP client against the ASGI app, with a temp content dir and a fake LLM."""
    store = ContentStore(content_dir)
    app.dependency_overrides[get_content_store] = lambda: store
    app.dependency_overrides[get_llm] = lambda: fake_llm
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client
    app.dependency_overrides.clear()
