"""Configuration for the LLM Council."""

import os
from dotenv import load_dotenv
from .config_loader import build_council_config, get_timeout_config, reload_config, CouncilConfig

load_dotenv()

OPENROUTER_BASE_URL = os.getenv("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1")
OPENROUTER_API_KEY = os.getenv("OPENROUTER_API_KEY", "")

_council_config = None


def get_council_config() -> CouncilConfig:
    """Process-wide council config, built once from YAML."""
    global _council_config
    if _council_config is None:
        _council_config = build_council_config()
    return _council_config


def reload_runtime_config() -> CouncilConfig:
    """Rebuild the council config after YAML changes."""
    global _council_config
    reload_config()
    _council_config = build_council_config()
    return _council_config


def get_client_settings() -> dict:
    """Connection settings for the default OpenRouter client."""
    timeouts = get_timeout_config()
    return {
        "api_key": OPENROUTER_API_KEY,
        "base_url": OPENROUTER_BASE_URL,
        "connection_timeout": float(timeouts["connection_timeout"]),
        "max_retries": int(timeouts["max_retries"]),
        "retry_backoff_factor": float(timeouts["retry_backoff_factor"]),
    }
