"""
Tests for first-success completion across candidates.
"""

import json

import httpx
import pytest

from study_chat.completion_gateway import (
    EMPTY_ANSWER,
    CompletionGateway,
    GenerationConfig,
    extract_answer,
)
from study_chat.errors import ExhaustionError
from study_chat.model_resolver import ModelResolver
from tests.helpers import API_BASE, gemini_answer


CANDIDATES = ["models/gemini-1.5-flash", "models/gemini-1.5-pro", "models/gemini-pro"]


class FakeClock:
    """Monotonic clock that advances a fixed step on every read."""

    def __init__(self, step: float):
        self.now = 0.0
        self.step = step

    def __call__(self) -> float:
        value = self.now
        self.now += self.step
        return value


def make_gateway(fake_upstream, **kwargs) -> CompletionGateway:
    http = fake_upstream.client()
    resolver = ModelResolver("test-key", http, api_base=API_BASE, discovery_attempts=1, retry_delay=0)
    return CompletionGateway(resolver, http, **kwargs)


@pytest.fixture
def upstream(fake_upstream):
    fake_upstream.add_models(*CANDIDATES)
    return fake_upstream


@pytest.mark.unit
class TestComplete:
    """The candidate loop."""

    def test_first_candidate_succeeds(self, upstream):
        upstream.completions["models/gemini-1.5-flash"] = (200, gemini_answer("Hello"))

        result = make_gateway(upstream).complete("Hi")

        assert result.answer_text == "Hello"
        assert result.model_used == "models/gemini-1.5-flash"
        assert upstream.completion_models == ["models/gemini-1.5-flash"]

    def test_rate_limited_candidate_is_skipped(self, upstream):
        upstream.completions["models/gemini-1.5-flash"] = (429, "quota exceeded")
        upstream.completions["models/gemini-1.5-pro"] = (200, gemini_answer("Answer"))
        upstream.completions["models/gemini-pro"] = (200, gemini_answer("never"))

        result = make_gateway(upstream).complete("q")

        assert result.answer_text == "Answer"
        assert result.model_used == "models/gemini-1.5-pro"
        assert upstream.completion_models == ["models/gemini-1.5-flash", "models/gemini-1.5-pro"]

    def test_all_candidates_fail(self, upstream):
        upstream.completions["models/gemini-1.5-flash"] = (429, "quota")
        upstream.completions["models/gemini-1.5-pro"] = (500, "internal")
        upstream.completions["models/gemini-pro"] = (403, "permission denied")

        with pytest.raises(ExhaustionError) as exc_info:
            make_gateway(upstream).complete("q")

        assert exc_info.value.last_error == "403 - permission denied"
        assert exc_info.value.attempts == 3

    def test_transport_error_advances(self, upstream):
        upstream.completions["models/gemini-1.5-flash"] = httpx.ReadTimeout("timed out")
        upstream.completions["models/gemini-1.5-pro"] = (200, gemini_answer("ok"))

        result = make_gateway(upstream).complete("q")

        assert result.model_used == "models/gemini-1.5-pro"

    def test_invalid_json_success_advances(self, upstream):
        upstream.completions["models/gemini-1.5-flash"] = (200, "<html>")
        upstream.completions["models/gemini-1.5-pro"] = (200, gemini_answer("ok"))

        assert make_gateway(upstream).complete("q").answer_text == "ok"

    def test_missing_text_yields_fixed_apology(self, upstream):
        upstream.completions["models/gemini-1.5-flash"] = (200, {"candidates": []})

        result = make_gateway(upstream).complete("q")

        assert result.answer_text == EMPTY_ANSWER
        assert result.model_used == "models/gemini-1.5-flash"

    def test_fallback_list_used_when_discovery_fails(self, fake_upstream):
        fake_upstream.list_status = 500
        fake_upstream.completions["models/gemini-1.5-pro"] = (200, gemini_answer("fallback"))

        result = make_gateway(fake_upstream).complete("q")

        assert result.model_used == "gemini-1.5-pro"
        assert fake_upstream.completion_models == ["models/gemini-1.5-flash", "models/gemini-1.5-pro"]

    def test_turn_deadline_stops_loop(self, upstream):
        upstream.completions["models/gemini-1.5-flash"] = (503, "unavailable")
        upstream.completions["models/gemini-1.5-pro"] = (503, "unavailable")

        gateway = make_gateway(upstream, turn_timeout=10.0, clock=FakeClock(step=4.0))

        with pytest.raises(ExhaustionError) as exc_info:
            gateway.complete("q")

        # clock reads: deadline=0+10, then 4, 8, 12 before each candidate
        assert upstream.completion_models == ["models/gemini-1.5-flash", "models/gemini-1.5-pro"]
        assert "timed out" in exc_info.value.last_error
        assert exc_info.value.attempts == 2


@pytest.mark.unit
class TestRequest:
    """Shape of the completion call."""

    def test_body_and_headers(self, upstream):
        upstream.completions["models/gemini-1.5-flash"] = (200, gemini_answer("ok"))

        make_gateway(upstream).complete("Explain heaps")

        request = upstream.completion_requests[0]
        assert str(request.url) == f"{API_BASE}/models/gemini-1.5-flash:generateContent"
        assert request.headers["x-goog-api-key"] == "test-key"
        assert json.loads(request.content) == {
            "contents": [{"parts": [{"text": "Explain heaps"}]}],
            "generationConfig": {
                "temperature": 0.7,
                "topK": 40,
                "topP": 0.95,
                "maxOutputTokens": 1024,
            },
        }

    def test_custom_generation_config(self):
        config = GenerationConfig(temperature=0.2, top_k=10, top_p=0.5, max_output_tokens=256)

        assert config.to_dict() == {"temperature": 0.2, "topK": 10, "topP": 0.5, "maxOutputTokens": 256}


@pytest.mark.parametrize("data", [
    {},
    {"candidates": [{}]},
    {"candidates": [{"content": {"parts": []}}]},
    {"candidates": [{"content": {"parts": [{"text": ""}]}}]},
    ["not", "a", "dict"],
])
def test_extract_answer_defaults(data):
    assert extract_answer(data) == EMPTY_ANSWER
