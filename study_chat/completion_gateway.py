"""
Completion Gateway

Issues the completion call against each resolved candidate in turn and
returns the first success. Calls are strictly sequential: a request never
pays for more than one successful generation. Nothing is cached between
requests; every call re-resolves its candidates.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import httpx

from study_chat.errors import CandidateError, ExhaustionError
from study_chat.model_resolver import ModelCandidate, ModelResolver

logger = logging.getLogger(__name__)

EMPTY_ANSWER = "I couldn't generate a response. Please try again."


@dataclass(frozen=True)
class GenerationConfig:
    temperature: float = 0.7
    top_k: int = 40
    top_p: float = 0.95
    max_output_tokens: int = 1024

    def to_dict(self) -> Dict[str, Any]:
        return {
            "temperature": self.temperature,
            "topK": self.top_k,
            "topP": self.top_p,
            "maxOutputTokens": self.max_output_tokens,
        }


@dataclass
class CompletionResult:
    answer_text: str
    model_used: str


def extract_answer(data: Any) -> str:
    """Text of the first candidate part, or a fixed apology if there is none."""
    try:
        text = data["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        return EMPTY_ANSWER
    return text if isinstance(text, str) and text else EMPTY_ANSWER


class CompletionGateway:
    """First-success completion over the resolver's ranked candidates."""

    def __init__(
        self,
        resolver: ModelResolver,
        http: httpx.Client,
        generation_config: Optional[GenerationConfig] = None,
        request_timeout: float = 30.0,
        turn_timeout: float = 90.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the gateway.

        Args:
            resolver: Source of ranked candidates
            http: Shared HTTP client
            generation_config: Sampling parameters sent with every call
            request_timeout: Upper bound for a single completion call
            turn_timeout: Upper bound for the whole candidate loop
            clock: Monotonic clock used for the turn deadline
        """
        self.resolver = resolver
        self.http = http
        self.generation_config = generation_config or GenerationConfig()
        self.request_timeout = request_timeout
        self.turn_timeout = turn_timeout
        self.clock = clock

    def request_body(self, prompt: str) -> Dict[str, Any]:
        return {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": self.generation_config.to_dict(),
        }

    def _call(self, candidate: ModelCandidate, body: Dict[str, Any], timeout: float) -> Any:
        try:
            resp = self.http.post(
                candidate.endpoint_url,
                json=body,
                headers=self.resolver.auth_headers,
                timeout=timeout,
            )
        except httpx.HTTPError as e:
            raise CandidateError(candidate.identifier, f"{type(e).__name__}: {e}") from e

        if not resp.is_success:
            raise CandidateError(
                candidate.identifier, f"{resp.status_code} - {resp.text}", resp.status_code
            )

        try:
            return resp.json()
        except ValueError as e:
            raise CandidateError(
                candidate.identifier, f"{resp.status_code} - invalid JSON body: {e}", resp.status_code
            ) from e

    def complete(self, prompt: str) -> CompletionResult:
        """
        Generate an answer for the prompt.

        Args:
            prompt: Full prompt text

        Returns:
            CompletionResult from the first candidate that succeeded

        Raises:
            ExhaustionError: Every candidate failed or the turn deadline passed
        """
        deadline = self.clock() + self.turn_timeout
        body = self.request_body(prompt)
        last_error = ""
        attempts = 0

        for candidate in self.resolver.resolve():
            remaining = deadline - self.clock()
            if remaining <= 0:
                last_error = f"Turn timed out after {self.turn_timeout:g}s ({last_error or 'no response'})"
                logger.warning(f"Turn deadline reached before trying {candidate.identifier}")
                break

            attempts += 1
            logger.info(f"Trying model: {candidate.identifier}...")
            try:
                data = self._call(candidate, body, min(self.request_timeout, remaining))
            except CandidateError as e:
                last_error = str(e)
                logger.warning(f"Model {candidate.identifier} failed: {last_error[:300]}")
                continue

            logger.info(f"Success with model: {candidate.identifier}")
            return CompletionResult(answer_text=extract_answer(data), model_used=candidate.identifier)

        logger.error(f"All Gemini models failed. Last error: {last_error[:300]}")
        raise ExhaustionError("All candidate models failed", last_error=last_error, attempts=attempts)
