"""YAML-based configuration loader for the LLM Council pipeline."""

import logging
import os
import yaml
from dataclasses import dataclass
from pathlib import Path
from typing import List, Dict, Any, Optional, Tuple

logger = logging.getLogger(__name__)

# Single-letter anonymization labels cap the council size.
MAX_COUNCIL_SIZE = 26

DEFAULT_CONFIG: Dict[str, Any] = {
    "models": [
        {"id": "openai/gpt-5.1", "name": "GPT-5.1"},
        {"id": "google/gemini-3-pro-preview", "name": "Gemini 3 Pro"},
        {"id": "anthropic/claude-sonnet-4.5", "name": "Claude Sonnet 4.5"},
        {"id": "x-ai/grok-4", "name": "Grok 4"},
    ],
    "chairman": "google/gemini-3-pro-preview",
    "history_limit": 6,
    "deliberation": {
        "temperatures": {"stage1": 0.7, "stage2": 0.3, "stage3": 0.4},
    },
    "timeout_config": {
        "model_timeout": 120,
        "chairman_timeout": 180,
        "connection_timeout": 30,
        "max_retries": 0,
        "retry_backoff_factor": 2,
    },
}

_config_cache: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class CouncilConfig:
    """Immutable council configuration injected into the pipeline."""
    council_models: Tuple[str, ...]
    chairman_model: str
    model_timeout: float = 120.0
    chairman_timeout: float = 180.0
    history_limit: int = 6
    stage1_temperature: Optional[float] = 0.7
    stage2_temperature: Optional[float] = 0.3
    stage3_temperature: Optional[float] = 0.4


def get_project_root() -> Path:
    return Path(__file__).parent.parent


def get_config_path() -> Path:
    override = os.getenv("LLM_COUNCIL_CONFIG")
    if override:
        return Path(override)
    return get_project_root() / "config" / "models.yaml"


def _load_yaml(path: Path) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def load_config() -> Dict[str, Any]:
    """Load model configuration from config/models.yaml."""
    global _config_cache
    if _config_cache is not None:
        return _config_cache

    config_path = get_config_path()
    if config_path.exists():
        _config_cache = _load_yaml(config_path)
        logger.info("Loaded configuration from %s", config_path)
    else:
        logger.warning("%s not found, using defaults", config_path)
        _config_cache = DEFAULT_CONFIG
    return _config_cache


def reload_config() -> Dict[str, Any]:
    """Force reload configuration from disk."""
    global _config_cache
    _config_cache = None
    return load_config()


def get_council_models(config: Optional[Dict[str, Any]] = None) -> List[str]:
    """Get list of council model IDs."""
    config = config if config is not None else load_config()
    models = []
    for entry in config.get("models", []):
        model_id = entry.get("id") if isinstance(entry, dict) else entry
        if model_id:
            models.append(str(model_id))
    return models


def get_chairman_model(config: Optional[Dict[str, Any]] = None) -> str:
    config = config if config is not None else load_config()
    return str(config.get("chairman", "") or "")


def get_timeout_config(config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    config = config if config is not None else load_config()
    timeouts = dict(DEFAULT_CONFIG["timeout_config"])
    timeouts.update(config.get("timeout_config") or {})
    return timeouts


def get_stage_temperatures(config: Optional[Dict[str, Any]] = None) -> Dict[str, Optional[float]]:
    """Get per-stage temperature settings."""
    config = config if config is not None else load_config()
    temps = (config.get("deliberation") or {}).get("temperatures") or {}
    defaults = DEFAULT_CONFIG["deliberation"]["temperatures"]
    return {stage: temps.get(stage, default) for stage, default in defaults.items()}


def build_council_config(config: Optional[Dict[str, Any]] = None) -> CouncilConfig:
    """Validate raw YAML data and freeze it into a CouncilConfig."""
    config = config if config is not None else load_config()
    models = get_council_models(config)
    chairman = get_chairman_model(config)

    if not models:
        raise ValueError("Council configuration must list at least one model")
    if len(set(models)) != len(models):
        raise ValueError(f"Council models must be unique: {models}")
    if len(models) > MAX_COUNCIL_SIZE:
        raise ValueError(
            f"Council has {len(models)} models; at most {MAX_COUNCIL_SIZE} can be anonymized"
        )
    if not chairman:
        raise ValueError("Council configuration must name a chairman model")

    timeouts = get_timeout_config(config)
    model_timeout = float(timeouts["model_timeout"])
    chairman_timeout = float(timeouts["chairman_timeout"])
    if model_timeout <= 0 or chairman_timeout <= 0:
        raise ValueError("Timeouts must be positive")

    history_limit = config.get("history_limit")
    if history_limit is None:
        history_limit = DEFAULT_CONFIG["history_limit"]
    try:
        history_limit = int(history_limit)
    except (TypeError, ValueError):
        raise ValueError(f"history_limit must be an integer, got {history_limit!r}")
    if history_limit < 0:
        raise ValueError("history_limit must not be negative")

    temps = get_stage_temperatures(config)
    return CouncilConfig(
        council_models=tuple(models),
        chairman_model=chairman,
        model_timeout=model_timeout,
        chairman_timeout=chairman_timeout,
        history_limit=history_limit,
        stage1_temperature=temps["stage1"],
        stage2_temperature=temps["stage2"],
        stage3_temperature=temps["stage3"],
    )
