"""Defaults and platform-aware path resolution for local data."""

import os
import sys
from pathlib import Path

# Placeholder demo endpoint; the real URL is set at runtime.
DEFAULT_BASE_URL = "https://f0523cdfafec8c1cc1.gradio.live"

HEALTH_TIMEOUT = 5.0  # seconds
STORAGE_FILENAME = "conversations.json"


def get_data_path() -> Path:
    """Return the directory inkbot keeps its conversations in."""
    env = os.environ.get("INKBOT_DATA_PATH")
    if env:
        return Path(env)

    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "inkbot"
    elif sys.platform == "win32":
        return Path(os.environ.get("APPDATA", "")) / "inkbot"
    else:  # Linux
        return Path.home() / ".local" / "share" / "inkbot"


def get_storage_path() -> Path:
    """Return the path of the saved-conversations file."""
    return get_data_path() / STORAGE_FILENAME


def normalize_base_url(url: str) -> str:
    """Strip whitespace and trailing slashes so endpoint paths join cleanly."""
    return url.strip().rstrip("/")
