"""
Study Chat - Core Application Package

This package contains the conversational core of the study assistant:
- context_builder: Schedule-aware prompt context
- session_store: Durable conversation sessions
- orchestrator: One request/response turn per session
- client: HTTP client for the chat server
- model_resolver: Upstream model discovery and ranking
- completion_gateway: First-success completion over ranked candidates
- server: FastAPI application exposing /chat and /health
- cli: Terminal front-end
"""

__version__ = "1.0.0"
__author__ = "Study Assistant Contributors"
