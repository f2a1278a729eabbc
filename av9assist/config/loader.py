"""
Configuration loader for av9Assist.

Merges three layers, lowest precedence first:
1. Defaults declared in av9assist.config.schema
2. An optional YAML file (AV9ASSIST_CONFIG or an explicit path)
3. Environment variables (the names the deployment already uses,
   e.g. GOOGLE_API_KEY, PROVIDERS_ORDER, AI_PROVIDER_TIMEOUT_MS)

and validates the result with the Pydantic schema.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from av9assist.config.schema import AppSettings
from av9assist.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# Environment variable → provider settings field. api_keys lists every
# interchangeable key slot in the order they are tried.
PROVIDER_ENV: dict[str, dict[str, Any]] = {
    "gemini": {
        "api_keys": ("GOOGLE_API_KEY", "GOOGLE_API_KEY_2"),
        "model": "GOOGLE_MODEL",
        "url": "GEMINI_API_URL",
    },
    "sambanova": {
        "api_keys": ("SAMBANOVA_API_KEY",),
        "model": "SAMBANOVA_MODEL",
        "url": "SAMBANOVA_API_URL",
    },
    "openrouter": {
        "api_keys": ("OPENROUTER_API_KEY",),
        "model": "OPENROUTER_MODEL",
        "url": "OPENROUTER_API_URL",
    },
}

# Header overrides (OpenRouter attribution)
HEADER_ENV: dict[str, dict[str, str]] = {
    "openrouter": {
        "HTTP-Referer": "OPENROUTER_REFERER",
        "X-Title": "OPENROUTER_TITLE",
    },
}

GLOBAL_ENV: dict[str, str] = {
    "providers_order": "PROVIDERS_ORDER",
    "timeout_ms": "AI_PROVIDER_TIMEOUT_MS",
    "fast_timeout_ms": "AI_PROVIDER_FAST_TIMEOUT_MS",
    "vision_timeout_ms": "AI_PROVIDER_VISION_TIMEOUT_MS",
    "context_window": "AI_CONTEXT_WINDOW",
    "system_prompt": "AV9ASSIST_SYSTEM_PROMPT",
}


def load_env_file(path: Optional[str | Path] = None) -> Optional[Path]:
    """
    Load a .env file into os.environ.

    Tries, in order: the explicit path, AV9ASSIST_ENV_PATH, then
    .env.local and .env in the working directory. The first file that
    exists wins. Returns the loaded path, or None if none was found.
    """
    candidates = [
        path,
        os.environ.get("AV9ASSIST_ENV_PATH"),
        Path.cwd() / ".env.local",
        Path.cwd() / ".env",
    ]
    for candidate in candidates:
        if not candidate:
            continue
        candidate = Path(candidate)
        if candidate.is_file():
            load_dotenv(candidate, override=True)
            logger.info("env_file_loaded", extra={"path": str(candidate)})
            return candidate
    return None


def _read_yaml(config_path: Path) -> dict[str, Any]:
    if not config_path.exists():
        raise ConfigurationError(
            f"Config not found: {config_path}",
            setting="AV9ASSIST_CONFIG",
        )

    with open(config_path, "r") as f:
        raw = yaml.safe_load(f)

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigurationError(
            f"Config file must contain a mapping: {config_path}",
            setting="AV9ASSIST_CONFIG",
        )
    return raw


def _env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    """Collect the settings that are present (and non-blank) in environ."""
    def _get(var: str) -> Optional[str]:
        value = environ.get(var)
        if value is None or not value.strip():
            return None
        return value.strip()

    overrides: dict[str, Any] = {}

    for field, var in GLOBAL_ENV.items():
        value = _get(var)
        if value is not None:
            overrides[field] = value

    for provider, mapping in PROVIDER_ENV.items():
        section: dict[str, Any] = {}

        keys = [_get(var) for var in mapping["api_keys"]]
        keys = [k for k in keys if k]
        if keys:
            section["api_keys"] = keys

        for field in ("model", "url"):
            value = _get(mapping[field])
            if value is not None:
                section[field] = value

        headers = {
            header: _get(var)
            for header, var in HEADER_ENV.get(provider, {}).items()
            if _get(var) is not None
        }
        if headers:
            section["headers"] = headers

        if section:
            overrides[provider] = section

    return overrides


def _merge(base: dict[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Recursive dict merge; nested mappings merge, everything else replaces."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_settings(
    environ: Optional[Mapping[str, str]] = None,
    config_path: Optional[str | Path] = None,
) -> AppSettings:
    """
    Build validated application settings.

    Args:
        environ: Environment mapping (defaults to os.environ).
        config_path: Optional YAML file. Falls back to AV9ASSIST_CONFIG.

    Returns:
        Validated AppSettings instance.

    Raises:
        ConfigurationError: If the YAML file is missing or any value
            fails validation (e.g. a non-numeric timeout).
    """
    environ = os.environ if environ is None else environ

    data = AppSettings().model_dump()

    config_path = config_path or environ.get("AV9ASSIST_CONFIG")
    if config_path:
        data = _merge(data, _read_yaml(Path(config_path)))

    data = _merge(data, _env_overrides(environ))

    try:
        settings = AppSettings(**data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration:\n{e}") from e

    unknown = [
        p for p in settings.providers_order
        if p not in settings.provider_settings()
    ]
    if unknown:
        logger.warning(
            "unknown_providers_in_order",
            extra={"providers": unknown},
        )

    return settings
