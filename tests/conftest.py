"""
Pytest Configuration and Shared Fixtures

This module contains pytest fixtures that are shared across all test files.
Fixtures defined here are automatically available in all test modules.
"""

import tempfile
from datetime import datetime
from pathlib import Path
from typing import Generator

import pytest

from study_chat.config import Config, ServerSettings
from study_chat.schedule import Assignment, Exam, Lecture, ScheduleSnapshot, UserProfile
from study_chat.session_store import SessionStore

from tests.helpers import API_BASE, FIXED_NOW, FakeUpstream


# ============================================================================
# Temporary Directory Fixtures
# ============================================================================

@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """
    Create a temporary directory for test files.

    Yields:
        Path to temporary directory
    """
    with tempfile.TemporaryDirectory() as tmp_dir:
        yield Path(tmp_dir)


@pytest.fixture
def temp_config_dir(temp_dir: Path, monkeypatch) -> Path:
    """
    Point the config module at a temporary directory.

    Returns:
        Path to temporary config directory
    """
    import study_chat.config as config_module

    data_dir = temp_dir / "data"
    data_dir.mkdir()

    monkeypatch.setattr(config_module, "CONFIG_FILE", temp_dir / "config.yaml")
    monkeypatch.setattr(config_module, "DATA_DIR", data_dir)

    return temp_dir


# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def default_config() -> Config:
    return Config()


@pytest.fixture
def server_settings() -> ServerSettings:
    """Server settings with no waiting between discovery retries."""
    return ServerSettings(
        api_base=API_BASE,
        request_timeout=5.0,
        turn_timeout=30.0,
        discovery_attempts=1,
    )


# ============================================================================
# Environment Fixtures
# ============================================================================

@pytest.fixture
def clean_env(monkeypatch) -> None:
    """Remove API keys from the environment."""
    for var in ["GEMINI_API_KEY", "GOOGLE_API_KEY"]:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def mock_gemini_env(clean_env, monkeypatch) -> str:
    """
    Set up a mock Gemini API key in the environment.

    Returns:
        The mock API key
    """
    api_key = "test-gemini-key"
    monkeypatch.setenv("GEMINI_API_KEY", api_key)
    return api_key


# ============================================================================
# Schedule Fixtures
# ============================================================================

@pytest.fixture
def fixed_now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def sample_snapshot() -> ScheduleSnapshot:
    """
    Schedule around FIXED_NOW (2026-01-10 09:00 UTC).

    Contains past, submitted and future assignments, past and future exams,
    and four lectures so every list gets truncated.
    """
    return ScheduleSnapshot(
        assignments=[
            Assignment(id="a1", title="Graph Theory Problem Set", due_date="2026-01-15T23:59:00+00:00"),
            Assignment(id="a2", title="Old Essay", due_date="2026-01-05T23:59:00+00:00"),
            Assignment(id="a3", title="Lab 3: Heaps", due_date="2026-01-12T12:00:00+00:00"),
            Assignment(id="a4", title="Submitted Report", due_date="2026-01-11T12:00:00+00:00", status="submitted"),
            Assignment(id="a5", title="Compiler Project", due_date="2026-02-01T12:00:00+00:00"),
            Assignment(id="a6", title="Quiz Prep", due_date="2026-01-10T09:30:00+00:00"),
        ],
        exams=[
            Exam(id="e1", title="Data Structures Final", date="2026-01-28", time="09:00"),
            Exam(id="e2", title="Algorithms Midterm", date="2026-01-20", time="14:00"),
            Exam(id="e3", title="Past Quiz", date="2026-01-02", time="10:00"),
            Exam(id="e4", title="Networks Final", date="2026-02-10", time="09:00"),
        ],
        lectures=[
            Lecture(id="l1", title="Intro to Graphs", date="2026-01-05", professor="Dr. Smith"),
            Lecture(id="l2", title="Dijkstra's Algorithm", date="2026-01-09", professor="Dr. Smith"),
            Lecture(id="l3", title="Heaps", date="2026-01-07", professor="Dr. Jones"),
            Lecture(id="l4", title="Course Overview", date="2026-01-02", professor="Dr. Jones"),
        ],
        user=UserProfile(id="u1", name="Alex Chen"),
    )


# ============================================================================
# Session Store Fixtures
# ============================================================================

@pytest.fixture
def history_file(temp_dir: Path) -> Path:
    return temp_dir / "history" / "chat_history.json"


@pytest.fixture
def store(history_file: Path) -> SessionStore:
    session_store = SessionStore(history_file, clock=lambda: FIXED_NOW)
    session_store.load()
    return session_store


# ============================================================================
# Upstream Provider Fixtures
# ============================================================================

@pytest.fixture
def fake_upstream() -> FakeUpstream:
    return FakeUpstream()


# ============================================================================
# Mock Fixtures
# ============================================================================

@pytest.fixture
def mock_console(mocker):
    """Mock Rich console for testing CLI output."""
    return mocker.patch("study_chat.cli.console")
