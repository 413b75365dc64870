"""Configuration paths and defaults for prcontext."""

from __future__ import annotations

import os
from pathlib import Path

BASE_DIR = Path(os.environ.get("PRCONTEXT_HOME", str(Path.home() / ".prcontext"))).expanduser()
CONFIG_FILE = BASE_DIR / "config.toml"

GITHUB_API_URL = "https://api.github.com"
GITHUB_TOKEN_ENV = "GITHUB_TOKEN"
USER_AGENT = "prcontext"
REQUEST_TIMEOUT = 30


def ensure_base_dirs() -> None:
    """Create the base directory for local configuration if needed."""
    BASE_DIR.mkdir(parents=True, exist_ok=True)
