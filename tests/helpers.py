"""Test helpers: a fake Gemini REST API served through httpx.MockTransport."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

import httpx


API_BASE = "https://upstream.test/v1beta"

FIXED_NOW = datetime(2026, 1, 10, 9, 0, 0, tzinfo=timezone.utc)


Outcome = Union[tuple, Exception]


class FakeUpstream:
    """
    In-memory stand-in for the Gemini REST API.

    ``models`` feeds the list-models call; ``completions`` maps a qualified
    model name ("models/gemini-1.5-flash") to ``(status, body)`` or an
    exception to raise. Unknown models answer 404.
    """

    def __init__(self):
        self.models: List[Dict[str, Any]] = []
        self.list_status = 200
        self.list_error: Optional[Exception] = None
        self.pages: Optional[List[Dict[str, Any]]] = None
        self.completions: Dict[str, Outcome] = {}
        self.requests: List[httpx.Request] = []

    def add_models(self, *names: str, methods=("generateContent", "countTokens")) -> None:
        for name in names:
            self.models.append({"name": name, "supportedGenerationMethods": list(methods)})

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        if request.method == "GET":
            if self.list_error is not None:
                raise self.list_error
            if self.list_status != 200:
                return httpx.Response(self.list_status, text="list failed")
            if self.pages is not None:
                token = request.url.params.get("pageToken")
                index = int(token) if token else 0
                return httpx.Response(200, json=self.pages[index])
            return httpx.Response(200, json={"models": self.models})

        name = request.url.path.split("/v1beta/", 1)[1].rsplit(":", 1)[0]
        outcome = self.completions.get(name, (404, "model not found"))
        if isinstance(outcome, Exception):
            raise outcome
        status, body = outcome
        if isinstance(body, str):
            return httpx.Response(status, text=body)
        return httpx.Response(status, json=body)

    @property
    def completion_requests(self) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == "POST"]

    @property
    def completion_models(self) -> List[str]:
        return [
            r.url.path.split("/v1beta/", 1)[1].rsplit(":", 1)[0]
            for r in self.completion_requests
        ]

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def client(self) -> httpx.Client:
        return httpx.Client(transport=self.transport())


def gemini_answer(text: str) -> Dict[str, Any]:
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


