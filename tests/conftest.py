import io
import json
import threading
import urllib.parse

import pytest

from helpscout_mcp_server.client.search import SearchMixin
from helpscout_mcp_server.config import Settings
from helpscout_mcp_server.exceptions import HelpScoutAPIError


class DummyResponse:
    def __init__(self, payload):
        self._body = json.dumps(payload).encode("utf-8")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def read(self):
        return self._body


def conversation(conv_id, created_at, status="active", **extra):
    return {"id": conv_id, "number": conv_id + 1000, "subject": f"Conversation {conv_id}",
            "status": status, "createdAt": created_at, **extra}


def conversations_page(items, total=None):
    return {
        "_embedded": {"conversations": items},
        "page": {"size": len(items), "totalElements": len(items) if total is None else total, "number": 1},
        "_links": {},
    }


class FakeSearchClient(SearchMixin):
    """Conversation source keyed by status; records every /conversations call."""

    def __init__(self, pages=None, failing=()):
        self.pages = pages or {}
        self.failing = set(failing)
        self.calls = []
        self._lock = threading.Lock()

    def list_conversations(self, params):
        with self._lock:
            self.calls.append(dict(params))
        status = params.get("status")
        if status in self.failing:
            raise HelpScoutAPIError("HTTP Error: 500 - Internal Server Error", status_code=500)
        items = self.pages.get(status, [])
        return {
            "conversations": list(items),
            "page": {"size": len(items), "totalElements": len(items), "number": 1},
            "next": None,
        }


class UrlRouter:
    """Fake urllib.request.urlopen: maps request paths to payloads or errors."""

    def __init__(self):
        self.routes = {}
        self.requests = []

    def add(self, path, payload):
        self.routes[path] = payload

    def __call__(self, req, timeout=None):
        url = getattr(req, "full_url", str(req))
        self.requests.append(req)
        path = urllib.parse.urlsplit(url).path
        for route, payload in self.routes.items():
            if path.endswith(route):
                if isinstance(payload, Exception):
                    raise payload
                if callable(payload):
                    return payload(req)
                return DummyResponse(payload)
        raise AssertionError(f"Unexpected request: {url}")

    def paths(self):
        return [urllib.parse.urlsplit(r.full_url).path for r in self.requests]

    def query(self, index):
        return dict(urllib.parse.parse_qsl(urllib.parse.urlsplit(self.requests[index].full_url).query))


@pytest.fixture
def settings():
    return Settings(api_key="Bearer test-token", base_url="https://api.example.test/v2/")


@pytest.fixture
def router(monkeypatch):
    import time as _time
    import urllib.request

    fake = UrlRouter()
    monkeypatch.setattr(urllib.request, "urlopen", fake, raising=False)
    monkeypatch.setattr(_time, "sleep", lambda s: None)
    return fake


def http_error(url, code, body=b"", headers=None):
    import urllib.error

    return urllib.error.HTTPError(url, code, "error", headers or {}, io.BytesIO(body))
