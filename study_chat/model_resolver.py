"""
Model Resolver

Turns "the caller wants a completion" into an ordered sequence of concrete
upstream endpoints, without hardcoding a single model name that may be
deprecated or unavailable for the configured key:

1. List the models the key can see (paginated).
2. Keep the ones that support generateContent.
3. Rank them by a fixed preference table, unknown models last in provider order.
4. If discovery fails or finds nothing usable, fall back to a fixed list.

The result is consumed lazily: later candidates are only built if the
gateway asks for them.
"""

import logging
import time
from dataclasses import dataclass
from functools import wraps
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple, Type

import httpx

from study_chat.config import DEFAULT_API_BASE, FALLBACK_MODELS, PREFERRED_MODELS
from study_chat.errors import DiscoveryError

logger = logging.getLogger(__name__)

GENERATE_METHOD = "generateContent"
MODEL_PREFIX = "models/"
RETRYABLE_STATUS = {429, 500, 502, 503, 504}


@dataclass(frozen=True)
class ModelCandidate:
    """One upstream model the gateway may try."""
    identifier: str
    endpoint_url: str


def _is_retryable(error: Exception) -> bool:
    status = getattr(error, "status_code", None)
    if status is not None:
        return status in RETRYABLE_STATUS
    error_str = str(error).lower()
    return any(keyword in error_str for keyword in ("rate limit", "timeout", "timed out"))


def retry_with_backoff(max_attempts: int = 3, base_delay: float = 1.0,
                       retry_on: Tuple[Type[Exception], ...] = (Exception,)):
    """
    Retry decorator with exponential backoff for transient API failures.

    Retries on:
    - Rate limit errors (429)
    - Server errors (500, 502, 503, 504)
    - Timeout errors

    Does NOT retry on:
    - Authentication errors (401, 403)
    - Bad request errors (400)
    - Other client errors

    Args:
        max_attempts: Maximum number of attempts, including the first (default: 3)
        base_delay: Base delay in seconds for exponential backoff (default: 1.0)
        retry_on: Exception types considered for a retry

    Returns:
        Decorated function with retry logic
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            for attempt in range(max_attempts):
                try:
                    return func(*args, **kwargs)
                except retry_on as e:
                    # If not retryable or final attempt, give up
                    if not _is_retryable(e) or attempt == max_attempts - 1:
                        raise

                    delay = base_delay * (2 ** attempt)
                    logger.warning(
                        f"API call failed (attempt {attempt + 1}/{max_attempts}), "
                        f"retrying in {delay:.1f}s: {e}"
                    )
                    time.sleep(delay)

            return None  # Should never reach here
        return wrapper
    return decorator


def qualified_name(name: str) -> str:
    """Model name with the provider's "models/" prefix."""
    return name if name.startswith(MODEL_PREFIX) else f"{MODEL_PREFIX}{name}"


def rank_models(names: Sequence[str], preferred: Sequence[str] = PREFERRED_MODELS) -> List[str]:
    """
    Order model names by the preference table.

    Names in the table sort by their position in it; all others follow in
    their original order (the sort is stable).
    """
    ranks = {qualified_name(name): index for index, name in enumerate(preferred)}
    unranked = len(ranks)
    return sorted(names, key=lambda name: ranks.get(qualified_name(name), unranked))


def supports_generation(model: Dict[str, Any]) -> bool:
    methods = model.get("supportedGenerationMethods") or []
    return isinstance(methods, list) and GENERATE_METHOD in methods


class ModelResolver:
    """Discovers and ranks the models callable with one API key."""

    def __init__(
        self,
        api_key: str,
        http: httpx.Client,
        api_base: str = DEFAULT_API_BASE,
        preferred_models: Optional[Sequence[str]] = None,
        fallback_models: Optional[Sequence[str]] = None,
        discovery_attempts: int = 2,
        max_pages: int = 5,
        retry_delay: float = 0.5,
    ):
        """
        Initialize the resolver.

        Args:
            api_key: Upstream API key
            http: Shared HTTP client (carries the per-call timeout)
            api_base: Provider API root, e.g. https://generativelanguage.googleapis.com/v1beta
            preferred_models: Ranking table, best first
            fallback_models: Used when discovery fails or yields nothing
            discovery_attempts: Attempts for each list-models page
            max_pages: Upper bound on list-models pages followed
            retry_delay: Base delay between discovery retries
        """
        self.api_key = api_key
        self.http = http
        self.api_base = api_base.rstrip("/")
        self.preferred_models = list(preferred_models or PREFERRED_MODELS)
        self.fallback_models = list(fallback_models or FALLBACK_MODELS)
        self.discovery_attempts = discovery_attempts
        self.max_pages = max_pages
        self.retry_delay = retry_delay

    @property
    def auth_headers(self) -> Dict[str, str]:
        return {"x-goog-api-key": self.api_key}

    def endpoint_url(self, name: str) -> str:
        return f"{self.api_base}/{qualified_name(name)}:{GENERATE_METHOD}"

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def _fetch_page(self, page_token: Optional[str]) -> Dict[str, Any]:
        params = {"pageToken": page_token} if page_token else None
        try:
            resp = self.http.get(f"{self.api_base}/models", params=params, headers=self.auth_headers)
        except httpx.TimeoutException as e:
            raise DiscoveryError(f"ListModels timeout: {e}") from e
        except httpx.HTTPError as e:
            raise DiscoveryError(f"ListModels transport error: {e}") from e

        if resp.status_code >= 400:
            raise DiscoveryError(
                f"ListModels failed with status {resp.status_code}: {resp.text[:200]}",
                status_code=resp.status_code,
            )
        try:
            data = resp.json()
        except ValueError as e:
            raise DiscoveryError(f"ListModels returned invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise DiscoveryError("ListModels returned an unexpected body")
        return data

    def discover(self) -> List[str]:
        """
        List generateContent-capable models visible to the key.

        Returns:
            Model names in provider order

        Raises:
            DiscoveryError: If the list call fails
        """
        fetch = retry_with_backoff(
            max_attempts=self.discovery_attempts,
            base_delay=self.retry_delay,
            retry_on=(DiscoveryError,),
        )(self._fetch_page)

        names: List[str] = []
        page_token: Optional[str] = None
        for _ in range(self.max_pages):
            data = fetch(page_token)
            for model in data.get("models") or []:
                if isinstance(model, dict) and model.get("name") and supports_generation(model):
                    names.append(model["name"])
            page_token = data.get("nextPageToken")
            if not page_token:
                break
        else:
            logger.warning(f"Stopped listing models after {self.max_pages} pages")

        return names

    def candidate_names(self) -> List[str]:
        """Ranked discovered models, or the fallback list."""
        logger.info("Attempting to discover available Gemini models...")
        try:
            names = rank_models(self.discover(), self.preferred_models)
        except DiscoveryError as e:
            logger.warning(f"{e}; using hardcoded fallbacks")
            return list(self.fallback_models)

        if not names:
            logger.warning("No generateContent models discovered; using hardcoded fallbacks")
            return list(self.fallback_models)

        logger.info(f"Discovered {len(names)} models. Top candidate: {names[0]}")
        return names

    def resolve(self) -> Iterator[ModelCandidate]:
        """
        Yield candidates best first.

        Discovery runs when the first candidate is requested; the sequence
        is never empty.
        """
        for name in self.candidate_names():
            yield ModelCandidate(identifier=name, endpoint_url=self.endpoint_url(name))
