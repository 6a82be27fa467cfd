"""
Configuration loading with layered precedence:
  1. Built-in defaults
  2. User-global:        ~/.config/mdchat/config.toml
  3. Working directory:  endpoints.toml  (highest priority)

All config is read-only at runtime; create/edit the TOML files manually.
A file that cannot be read or parsed is skipped with a warning.
"""

from __future__ import annotations

import logging
import tomllib
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from .models import EndpointConfig, ResolvedEndpoint

logger = logging.getLogger(__name__)

REPO_CONFIG_FILE = Path("endpoints.toml")
USER_CONFIG_FILE = Path.home() / ".config" / "mdchat" / "config.toml"

# Used when no endpoint provides a default_model
FALLBACK_MODEL = "gpt-4o"

# ── Defaults ──────────────────────────────────────────────────────────────────

DEFAULT_CONFIG: dict[str, Any] = {
    # Endpoint used when --endpoint is not given; None = first configured one
    "default_openai_endpoint": None,

    # Named OpenAI-compatible endpoints:
    #   [openai_endpoints.<name>]
    #   api_key = "..."        (None = OPENAI_API_KEY)
    #   api_base = "..."       (None = OPENAI_BASE_URL or api.openai.com)
    #   default_model = "..."  (None = FALLBACK_MODEL)
    "openai_endpoints": {},

    # Extension of transcript files picked up when no file is given
    "transcript_suffix": ".md",
}


# ── Loader ────────────────────────────────────────────────────────────────────


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge `override` into `base`, returning a new dict."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _read_toml(path: Path) -> Optional[dict[str, Any]]:
    if not path.exists():
        return None
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as exc:
        logger.warning("Could not load or parse '%s': %s. Ignoring it.", path, exc)
        return None


def load_config() -> dict[str, Any]:
    """
    Return the merged configuration dict.
    Keys from higher-priority sources override lower ones (but nested dicts merge).
    """
    config = dict(DEFAULT_CONFIG)

    # User-global config (lower priority)
    user_cfg = _read_toml(USER_CONFIG_FILE)
    if user_cfg:
        config = _deep_merge(config, user_cfg)

    # Working-directory config (highest priority)
    repo_cfg = _read_toml(REPO_CONFIG_FILE)
    if repo_cfg:
        config = _deep_merge(config, repo_cfg)

    return config


# ── Endpoint resolution ───────────────────────────────────────────────────────


def _sdk_defaults(source: str) -> ResolvedEndpoint:
    return ResolvedEndpoint(model=FALLBACK_MODEL, source=source)


def _from_entry(name: str, raw: Any, source: str) -> Optional[ResolvedEndpoint]:
    try:
        entry = EndpointConfig.model_validate(raw)
    except ValidationError as exc:
        logger.warning("Endpoint '%s' is not a valid endpoint table (%s). Falling back.", name, exc)
        return None
    return ResolvedEndpoint(
        name=name,
        api_key=entry.api_key,
        api_base=entry.api_base,
        model=entry.default_model or FALLBACK_MODEL,
        source=source,
    )


def resolve_endpoint(config: dict[str, Any], name: Optional[str] = None) -> ResolvedEndpoint:
    """
    Pick the endpoint for this run.

    Precedence: explicit `name` (CLI) > `default_openai_endpoint` > the first
    endpoint in file order. A requested name that is not configured logs a
    warning and falls back to the SDK defaults (OPENAI_API_KEY etc.).
    """
    defaults_source = "defaults (OPENAI_API_KEY and the default OpenAI base)"
    endpoints = config.get("openai_endpoints") or {}
    if not isinstance(endpoints, dict):
        logger.warning("[openai_endpoints] must be a table. Falling back.")
        endpoints = {}

    wanted = name or config.get("default_openai_endpoint")

    if wanted:
        if not endpoints:
            logger.warning(
                "Endpoint '%s' was specified, but no [openai_endpoints] table is configured. Falling back.",
                wanted,
            )
            return _sdk_defaults(defaults_source)
        if wanted not in endpoints:
            logger.warning(
                "Endpoint '%s' not found in [openai_endpoints]. Falling back.",
                wanted,
            )
            return _sdk_defaults(defaults_source)
        resolved = _from_entry(wanted, endpoints[wanted], f"endpoint '{wanted}' from configuration")
        return resolved or _sdk_defaults(defaults_source)

    # No name anywhere: first endpoint in file order, if any
    first_name = next(iter(endpoints), None)
    if first_name is None:
        return _sdk_defaults(defaults_source)
    resolved = _from_entry(
        first_name,
        endpoints[first_name],
        f"the first configured endpoint '{first_name}' (no endpoint chosen)",
    )
    return resolved or _sdk_defaults(defaults_source)
