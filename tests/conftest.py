import json

import httpx
import pytest

from retro_insight_pipeline.app.history import DashboardState, StateStorage

STORE_URL = "http://store.test/api/retro-data"
COMPLETION_URL = "http://llm.test/v1/generate"


def gemini_reply(text):
    return {"candidates": [{"content": {"parts": [{"text": text}], "role": "model"}}]}


class FakeStore:
    """In-memory stand-in for the remote dataset store, served through httpx.MockTransport."""

    def __init__(self, documents=None, categories=None, fail=False):
        self.documents = documents if documents is not None else []
        self.categories = categories if categories is not None else []
        self.fail = fail
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail:
            return httpx.Response(500, json={"error": "boom"})
        path = request.url.path
        if request.method == "GET" and path == "/api/retro-data":
            return httpx.Response(200, json=self.documents)
        if request.method == "GET" and path == "/api/retro-data/categories":
            return httpx.Response(200, json=self.categories)
        if request.method == "PUT":
            body = json.loads(request.content)
            return httpx.Response(200, json={"updated": path.rsplit("/", 1)[-1], "values": body["values"]})
        if request.method == "POST" and path == "/api/retro-data/upload-csv":
            return httpx.Response(200, json={"message": "ok"})
        return httpx.Response(404, json={"error": "not found"})

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


class FakeCompletion:
    """Completion endpoint returning queued replies and recording prompts."""

    def __init__(self, *replies, status_code=200):
        self.replies = list(replies)
        self.status_code = status_code
        self.prompts = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.prompts.append(body["contents"][0]["parts"][0]["text"])
        reply = self.replies.pop(0)
        return httpx.Response(self.status_code, json=reply)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture(autouse=True)
def _env(monkeypatch):
    monkeypatch.setenv("RETRO_STORE_URL", STORE_URL)
    monkeypatch.setenv("COMPLETION_BACKEND", "http")
    monkeypatch.setenv("COMPLETION_URL", COMPLETION_URL)
    monkeypatch.delenv("COMPLETION_API_KEY", raising=False)
    monkeypatch.delenv("HISTORY_LIMIT", raising=False)


@pytest.fixture
def storage(tmp_path):
    return StateStorage(str(tmp_path / "state" / "dashboard.json"))


@pytest.fixture
def state(storage):
    return DashboardState(storage).load()
