"""
Configuration Module - Application configuration management

This module handles loading, saving, and validating configuration for both
halves of the system:
- Config: the terminal client (server URL, history file, schedule file),
  stored in YAML format
- ServerSettings: the chat server (upstream API base, timeouts, model
  preference tables), read from environment variables
"""

import os
from pathlib import Path
from typing import Optional, List, Dict, Any, Tuple
from dataclasses import dataclass, field, asdict

import yaml


# ============================================================================
# Constants
# ============================================================================

PROJECT_ROOT = Path(__file__).parent.parent
CONFIG_FILE = PROJECT_ROOT / "config.yaml"
DATA_DIR = PROJECT_ROOT / "data"

HISTORY_FILENAME = "chat_history.json"

DEFAULT_API_BASE = "https://generativelanguage.googleapis.com/v1beta"

# Ranked preference table; provider names carry the "models/" prefix
PREFERRED_MODELS = [
    "models/gemini-1.5-flash",
    "models/gemini-1.5-flash-latest",
    "models/gemini-1.5-pro",
    "models/gemini-1.0-pro",
    "models/gemini-pro",
]

FALLBACK_MODELS = [
    "gemini-1.5-flash",
    "gemini-1.5-pro",
    "gemini-1.0-pro",
    "gemini-pro",
]

API_KEY_ENV_VARS = ("GEMINI_API_KEY", "GOOGLE_API_KEY")


# ============================================================================
# Client Configuration
# ============================================================================

@dataclass
class Config:
    """
    Terminal client configuration.

    Attributes:
        server_url: Base URL of the chat server
        request_timeout: Seconds to wait for one /chat round trip
        history_file: Path of the persisted session list (None for default)
        schedule_file: YAML file with lectures, assignments, exams and user

        show_sources: Whether to show source citations
        verbose: Enable verbose logging
    """

    # Server Connection
    server_url: str = "http://127.0.0.1:8000"
    request_timeout: float = 120.0

    # Local Files
    history_file: Optional[str] = None
    schedule_file: Optional[str] = None

    # Application Settings
    show_sources: bool = True
    verbose: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert configuration to dictionary.

        Returns:
            Dictionary representation of configuration
        """
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """
        Create configuration from dictionary.

        Args:
            data: Dictionary containing configuration values

        Returns:
            Config instance
        """
        # Filter out keys that aren't part of the Config dataclass
        valid_keys = {f.name for f in cls.__dataclass_fields__.values()}
        filtered_data = {k: v for k, v in data.items() if k in valid_keys}

        return cls(**filtered_data)

    def get_history_path(self) -> Path:
        """
        Resolve where the session history is persisted.

        Returns:
            Path to the history file
        """
        if self.history_file:
            return Path(self.history_file).expanduser()
        return DATA_DIR / HISTORY_FILENAME

    def validate(self) -> Tuple[bool, Optional[str]]:
        """
        Validate configuration.

        Returns:
            Tuple of (is_valid, error_message)
        """
        if not self.server_url:
            return False, "Server URL is required"

        if not self.server_url.startswith(("http://", "https://")):
            return False, f"Server URL must start with http:// or https://: {self.server_url}"

        if self.request_timeout <= 0:
            return False, "Request timeout must be positive"

        if self.schedule_file:
            path = Path(self.schedule_file).expanduser()
            if not path.is_file():
                return False, f"Schedule file does not exist: {self.schedule_file}"

        return True, None


# ============================================================================
# Server Settings
# ============================================================================

def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


@dataclass
class ServerSettings:
    """
    Chat server settings.

    The upstream credential is not a field; get_api_key_from_env() is
    called on every request.
    """

    api_base: str = field(
        default_factory=lambda: os.getenv("STUDY_CHAT_API_BASE", DEFAULT_API_BASE)
    )
    request_timeout: float = field(
        default_factory=lambda: _env_float("STUDY_CHAT_REQUEST_TIMEOUT", 30.0)
    )
    turn_timeout: float = field(
        default_factory=lambda: _env_float("STUDY_CHAT_TURN_TIMEOUT", 90.0)
    )
    discovery_attempts: int = field(
        default_factory=lambda: _env_int("STUDY_CHAT_DISCOVERY_ATTEMPTS", 2)
    )
    max_discovery_pages: int = 5
    preferred_models: List[str] = field(default_factory=lambda: list(PREFERRED_MODELS))
    fallback_models: List[str] = field(default_factory=lambda: list(FALLBACK_MODELS))

    # Generation configuration
    temperature: float = 0.7
    top_k: int = 40
    top_p: float = 0.95
    max_output_tokens: int = 1024

    def validate(self) -> Tuple[bool, Optional[str]]:
        """
        Validate server settings.

        Returns:
            Tuple of (is_valid, error_message)
        """
        if not self.api_base.startswith(("http://", "https://")):
            return False, f"Invalid API base URL: {self.api_base}"

        if self.request_timeout <= 0 or self.turn_timeout <= 0:
            return False, "Timeouts must be positive"

        if self.discovery_attempts < 1:
            return False, "discovery_attempts must be at least 1"

        if len(self.fallback_models) == 0:
            return False, "At least one fallback model is required"

        if not 0.0 <= self.temperature <= 2.0:
            return False, "Temperature must be between 0.0 and 2.0"

        return True, None


# ============================================================================
# Configuration I/O
# ============================================================================

def config_exists() -> bool:
    """
    Check if a configuration file exists.

    Returns:
        True if config file exists, False otherwise
    """
    return CONFIG_FILE.exists()


def load_config() -> Config:
    """
    Load configuration from file.

    Returns:
        Config instance

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config file is invalid
    """
    if not config_exists():
        raise FileNotFoundError(f"Configuration file not found: {CONFIG_FILE}")

    try:
        with open(CONFIG_FILE, "r") as f:
            data = yaml.safe_load(f)

        if data is None:
            raise ValueError("Configuration file is empty")

        config = Config.from_dict(data)

        # Validate configuration
        is_valid, error = config.validate()
        if not is_valid:
            raise ValueError(f"Invalid configuration: {error}")

        return config

    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in configuration file: {e}")


def save_config(config: Config) -> None:
    """
    Save configuration to file.

    Args:
        config: Configuration to save

    Raises:
        ValueError: If configuration is invalid
    """
    is_valid, error = config.validate()
    if not is_valid:
        raise ValueError(f"Cannot save invalid configuration: {error}")

    with open(CONFIG_FILE, "w") as f:
        yaml.dump(config.to_dict(), f, default_flow_style=False, sort_keys=False)


def get_default_config() -> Config:
    """
    Get a default configuration instance.

    Returns:
        Config with default values
    """
    return Config()


# ============================================================================
# Environment Variables
# ============================================================================

def get_api_key_from_env() -> Optional[str]:
    """
    Look up the upstream API key in the environment.

    Returns:
        API key if found, None otherwise
    """
    for var_name in API_KEY_ENV_VARS:
        api_key = os.environ.get(var_name)
        if api_key:
            return api_key

    return None


# ============================================================================
# Utility Functions
# ============================================================================

def ensure_data_dir() -> Path:
    """
    Ensure the data directory exists.

    Returns:
        Path to data directory
    """
    DATA_DIR.mkdir(exist_ok=True)
    return DATA_DIR
