"""Shared test fixtures for the exporter."""

import json
from typing import Any, Callable, List, Optional

import pytest
import requests

from inoreader_exporter import ExporterConfig, TokenStore

FIXED_NOW = 1_700_000_000


def make_response(status_code: int = 200, body: Optional[str] = None, payload: Any = None) -> requests.Response:
    """Build a real ``requests.Response`` carrying ``body`` or JSON ``payload``."""
    if body is None:
        body = json.dumps(payload if payload is not None else {})
    response = requests.Response()
    response.status_code = status_code
    response._content = body.encode("utf-8")
    response.encoding = "utf-8"
    return response


def page_payload(titles: List[str], continuation: Optional[str] = None) -> dict:
    payload: dict = {
        "items": [
            {"title": t, "canonical": [{"href": f"https://example.com/{t}"}]}
            for t in titles
        ]
    }
    if continuation is not None:
        payload["continuation"] = continuation
    return payload


class FakeSession:
    """Records requests and replays scripted responses.

    ``responses`` is consumed in order; an exception instance is raised
    instead of returned. ``handler`` takes precedence and is called with
    ``(method, url, kwargs)`` for every request.
    """

    def __init__(self, responses: Optional[list] = None,
                 handler: Optional[Callable[[str, str, dict], requests.Response]] = None):
        self.responses = list(responses or [])
        self.handler = handler
        self.calls: List[tuple] = []

    def _dispatch(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        self.calls.append((method, url, kwargs))
        if self.handler is not None:
            return self.handler(method, url, kwargs)
        result = self.responses.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    def get(self, url: str, **kwargs: Any) -> requests.Response:
        return self._dispatch("GET", url, **kwargs)

    def post(self, url: str, **kwargs: Any) -> requests.Response:
        return self._dispatch("POST", url, **kwargs)


@pytest.fixture
def config(tmp_path) -> ExporterConfig:
    return ExporterConfig(
        auth_url="https://auth.test/oauth2/auth",
        token_url="https://auth.test/oauth2/token",
        api_base_url="https://api.test/reader/api/0",
        token_file=str(tmp_path / ".config"),
    )


@pytest.fixture
def store(config: ExporterConfig) -> TokenStore:
    return TokenStore(config.token_file)


@pytest.fixture
def clock() -> Callable[[], float]:
    return lambda: float(FIXED_NOW)
