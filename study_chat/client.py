"""
HTTP client for the chat server.

Every failure (network error, timeout, non-2xx status, malformed body) is
raised as TransportError so the orchestrator has a single failure path.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional

import httpx

from study_chat.conversation import Source
from study_chat.errors import TransportError

logger = logging.getLogger(__name__)

DEFAULT_SERVER_URL = "http://127.0.0.1:8000"


@dataclass
class ChatReply:
    response: str
    model: Optional[str] = None
    sources: List[Source] = field(default_factory=list)


class ChatClient:
    def __init__(self, base_url: str = DEFAULT_SERVER_URL, timeout: float = 120.0,
                 transport: Optional[httpx.BaseTransport] = None):
        self._base_url = base_url.rstrip("/")
        self._client = httpx.Client(
            base_url=self._base_url,
            headers={"User-Agent": "study-chat/1.0.0", "Accept": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    def ask(self, message: str) -> ChatReply:
        """POST one prompt to /chat and return the parsed reply."""
        try:
            resp = self._client.post("/chat", json={"message": message})
        except httpx.HTTPError as e:
            raise TransportError(f"Could not reach chat server: {e}") from e

        if resp.status_code >= 400:
            body = self._json_or_none(resp)
            details = body if isinstance(body, dict) else None
            error = (details or {}).get("error") or resp.text[:200]
            raise TransportError(f"HTTP {resp.status_code}: {error}", resp.status_code, details)

        return self._parse_reply(self._json_or_none(resp))

    def health(self) -> bool:
        try:
            resp = self._client.get("/health")
        except httpx.HTTPError as e:
            logger.debug(f"Health check failed: {e}")
            return False
        body = self._json_or_none(resp)
        return resp.status_code == 200 and isinstance(body, dict) and body.get("status") == "ok"

    @staticmethod
    def _json_or_none(resp: httpx.Response) -> Any:
        try:
            return resp.json()
        except ValueError:
            return None

    @staticmethod
    def _parse_reply(body: Any) -> ChatReply:
        if not isinstance(body, dict) or not isinstance(body.get("response"), str):
            raise TransportError("Malformed response from chat server")

        raw_sources = body.get("sources") or []
        if not isinstance(raw_sources, list):
            raise TransportError("Malformed sources in chat server response")
        try:
            sources = [Source.from_dict(item) for item in raw_sources]
        except AttributeError as e:
            raise TransportError(f"Malformed sources in chat server response: {e}") from e

        model = body.get("model")
        return ChatReply(
            response=body["response"],
            model=model if isinstance(model, str) and model else None,
            sources=sources,
        )

    def close(self) -> None:
        self._client.close()
