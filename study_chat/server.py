"""FastAPI chat server: model resolution and completion behind POST /chat."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, List, Optional

import httpx
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from study_chat import __version__
from study_chat.completion_gateway import CompletionGateway, CompletionResult, GenerationConfig
from study_chat.config import ServerSettings, get_api_key_from_env
from study_chat.errors import ConfigError, ExhaustionError, InputError
from study_chat.model_resolver import ModelResolver

# --------------------------------------------------------------------------- #
# Environment / logging setup
# --------------------------------------------------------------------------- #

load_dotenv()

logger = logging.getLogger(__name__)

SYSTEM_PREAMBLE = (
    "You are an AI study assistant for a Smart Lecture Notes application. "
    "You help students with their lectures, assignments, and study materials. "
    "Answer the following question helpfully and concisely:\n\n"
)

MISSING_KEY_ERROR = "API key not configured. Please set GEMINI_API_KEY in environment variables."

# --------------------------------------------------------------------------- #
# Pydantic models
# --------------------------------------------------------------------------- #


class HealthResponse(BaseModel):
    status: str


class SourceModel(BaseModel):
    lectureId: str
    lectureTitle: str
    timestamp: str
    excerpt: str


class ChatResponse(BaseModel):
    response: str
    sources: List[SourceModel] = Field(default_factory=list)
    model: str


class ErrorResponse(BaseModel):
    error: str
    details: Optional[str] = None
    last_api_error: Optional[str] = None


def _error(status_code: int, error: str, **extra: Optional[str]) -> JSONResponse:
    body = ErrorResponse(error=error, **extra)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


def read_message(payload: Any) -> str:
    """The non-blank ``message`` field of a /chat body."""
    message = payload.get("message") if isinstance(payload, dict) else None
    if not isinstance(message, str) or not message.strip():
        raise InputError("Message is required")
    return message


def require_api_key() -> str:
    api_key = get_api_key_from_env()
    if not api_key:
        raise ConfigError(MISSING_KEY_ERROR)
    return api_key


# --------------------------------------------------------------------------- #
# Gateway wiring
# --------------------------------------------------------------------------- #

GatewayFactory = Callable[[str, ServerSettings, httpx.Client], CompletionGateway]


def build_gateway(api_key: str, settings: ServerSettings, http: httpx.Client) -> CompletionGateway:
    """Resolver + gateway for one request."""
    resolver = ModelResolver(
        api_key=api_key,
        http=http,
        api_base=settings.api_base,
        preferred_models=settings.preferred_models,
        fallback_models=settings.fallback_models,
        discovery_attempts=settings.discovery_attempts,
        max_pages=settings.max_discovery_pages,
    )
    return CompletionGateway(
        resolver=resolver,
        http=http,
        generation_config=GenerationConfig(
            temperature=settings.temperature,
            top_k=settings.top_k,
            top_p=settings.top_p,
            max_output_tokens=settings.max_output_tokens,
        ),
        request_timeout=settings.request_timeout,
        turn_timeout=settings.turn_timeout,
    )


# --------------------------------------------------------------------------- #
# FastAPI application
# --------------------------------------------------------------------------- #


def create_app(
    settings: Optional[ServerSettings] = None,
    gateway_factory: GatewayFactory = build_gateway,
    transport: Optional[httpx.BaseTransport] = None,
) -> FastAPI:
    """
    Build the chat server.

    Args:
        settings: Server settings (defaults read from the environment)
        gateway_factory: Builds the gateway for each request
        transport: Optional httpx transport for upstream calls
    """
    settings = settings or ServerSettings()
    is_valid, error = settings.validate()
    if not is_valid:
        raise ValueError(f"Invalid server settings: {error}")

    app = FastAPI(
        title="Study Chat API",
        description="Schedule-aware study assistant backed by Gemini.",
        version=__version__,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_headers=["Content-Type", "Authorization"],
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        expose_headers=["Content-Length"],
        max_age=600,
    )

    @app.exception_handler(InputError)
    async def input_error_handler(request: Request, exc: InputError) -> JSONResponse:
        return _error(400, str(exc))

    @app.exception_handler(ConfigError)
    async def config_error_handler(request: Request, exc: ConfigError) -> JSONResponse:
        logger.error(f"Server misconfigured: {exc}")
        return _error(500, str(exc))

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(f"{request.method} {request.url.path} {response.status_code} {elapsed_ms:.0f}ms")
        return response

    def complete(api_key: str, prompt: str) -> CompletionResult:
        with httpx.Client(timeout=settings.request_timeout, transport=transport) as http:
            return gateway_factory(api_key, settings, http).complete(prompt)

    @app.get("/health", response_model=HealthResponse)
    async def health_check() -> HealthResponse:
        """Health check endpoint."""
        return HealthResponse(status="ok")

    @app.post(
        "/chat",
        response_model=ChatResponse,
        responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    )
    async def chat(request: Request) -> Any:
        """Answer one prompt with the first upstream model that accepts it."""
        try:
            payload = await request.json()
        except ValueError:
            raise InputError("Message is required")

        message = read_message(payload)
        api_key = require_api_key()

        logger.info(f"CHAT REQUEST: {len(message)} chars")
        try:
            result = await run_in_threadpool(complete, api_key, SYSTEM_PREAMBLE + message)
        except ExhaustionError as e:
            return _error(
                500,
                "Failed to connect to AI service.",
                details="Unable to find a working Gemini model. Please check your API key permissions.",
                last_api_error=e.last_error,
            )
        except Exception as e:
            logger.exception("Error in chat endpoint")
            return _error(
                500,
                "An error occurred while processing your request",
                details=str(e),
            )

        return ChatResponse(response=result.answer_text, sources=[], model=result.model_used)

    return app


app = create_app()


# --------------------------------------------------------------------------- #
# Entrypoint
# --------------------------------------------------------------------------- #


def run(host: str = "127.0.0.1", port: int = 8000, reload: bool = False) -> None:
    import uvicorn

    uvicorn.run(
        "study_chat.server:app",
        host=host,
        port=port,
        reload=reload,
        log_level="info",
    )


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    run()
