"""TOML-backed settings for GitHub access, retries, and indexing."""

from __future__ import annotations

import os
from typing import Any, Dict

import toml

from . import config
from .indexer import IndexSettings
from .rate_limit import RetryPolicy, policy_from_config


def load_full_config() -> Dict[str, Any]:
    """Load the entire TOML config (all sections)."""
    if not config.CONFIG_FILE.exists():
        return {}
    try:
        with open(config.CONFIG_FILE, "r", encoding="utf-8") as f:
            return toml.load(f)
    except (OSError, toml.TomlDecodeError):
        return {}


def _save_full_config(values: Dict[str, Any]) -> bool:
    """Write entire config dict to TOML file, preserving all sections."""
    config.ensure_base_dirs()
    try:
        with open(config.CONFIG_FILE, "w", encoding="utf-8") as f:
            toml.dump(values, f)
        return True
    except OSError:
        return False


def load_config() -> Dict[str, Any]:
    """Load the ``[github]`` section with defaults filled in.

    The token falls back to the ``GITHUB_TOKEN`` environment variable.
    """
    section = dict(load_full_config().get("github", {}))
    section.setdefault("api_url", config.GITHUB_API_URL)
    if not section.get("token"):
        section["token"] = os.environ.get(config.GITHUB_TOKEN_ENV, "")
    return section


def save_config(token: str = "", api_url: str = "") -> bool:
    """Save GitHub settings, preserving the ``[retry]`` and ``[indexing]`` sections.

    Args:
        token: Personal access token used for API calls.
        api_url: REST endpoint (GitHub Enterprise installs differ).

    Returns:
        True if saved successfully, False otherwise.
    """
    values = load_full_config()
    github = values.setdefault("github", {})
    if token:
        github["token"] = token
    if api_url:
        github["api_url"] = api_url
    return _save_full_config(values)


def load_retry_config() -> RetryPolicy:
    return policy_from_config(load_full_config().get("retry", {}))


def load_index_config() -> IndexSettings:
    return IndexSettings.from_config(load_full_config().get("indexing", {}))
