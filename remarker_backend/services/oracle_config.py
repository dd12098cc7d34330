import os
from typing import Any, Dict, Optional

ORACLE_PROVIDERS = ("gemini", "anthropic", "local")
DEFAULT_PROVIDER = "gemini"

DEFAULT_MODELS = {
    "gemini": "gemini-2.0-flash-001",
    "anthropic": "claude-3-5-sonnet-20241022",
    "local": "glm-4.6v-flash",
}

LOCAL_LLM_BASE_URL = "http://localhost:1234"


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    value_str = str(value).strip().lower()
    return value_str in {"1", "true", "yes", "on"}


def _normalize_provider(value: Any) -> str:
    provider = str(value or "").strip().lower()
    if provider in ORACLE_PROVIDERS:
        return provider
    return DEFAULT_PROVIDER


def get_env_oracle_defaults() -> Dict[str, Any]:
    provider = _normalize_provider(os.getenv("ORACLE_PROVIDER", DEFAULT_PROVIDER))
    return {
        "provider": provider,
        "model": os.getenv("ORACLE_MODEL", DEFAULT_MODELS[provider]),
        "base_url": os.getenv("LOCAL_LLM_BASE_URL", LOCAL_LLM_BASE_URL),
        "temperature": float(os.getenv("ORACLE_TEMPERATURE", "0.3")),
        "max_tokens": int(os.getenv("ORACLE_MAX_TOKENS", "1024")),
        "timeout_seconds": float(os.getenv("ORACLE_TIMEOUT_SECONDS", "30")),
        "trace_calls": _to_bool(os.getenv("TRACE_API_CALLS", "true")),
    }


def merge_oracle_config(overrides: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    config = get_env_oracle_defaults()
    if not overrides:
        return config

    sanitized = {}
    for key, value in overrides.items():
        if key == "provider":
            sanitized[key] = _normalize_provider(value)
        elif key == "trace_calls":
            sanitized[key] = _to_bool(value)
        elif key in {"temperature", "timeout_seconds"}:
            sanitized[key] = float(value)
        elif key == "max_tokens":
            sanitized[key] = int(value)
        else:
            sanitized[key] = value

    # Switching provider without naming a model selects that provider's default model.
    if "provider" in sanitized and "model" not in sanitized:
        sanitized["model"] = DEFAULT_MODELS[sanitized["provider"]]

    config.update(sanitized)
    return config
