"""Persisted user settings and API-key storage.

The backend selection survives across sessions in a small JSON file.  The
API key is kept out of that file: it lives under ``OPENAI_API_KEY`` in a
dotenv file (read and written with python-dotenv), and a value already set
in the process environment takes precedence.
"""

import json
import logging
import os
from pathlib import Path

from dotenv import get_key, set_key
from pydantic import BaseModel, ValidationError

from papermanager.models import BackendSelection

logger = logging.getLogger(__name__)

API_KEY_VAR = "OPENAI_API_KEY"


class Settings(BaseModel):
    """User-chosen settings persisted between sessions.

    ``local_model_path`` replaces the bundled GGUF model when set.
    """

    backend: BackendSelection = BackendSelection.REMOTE
    local_model_path: Path | None = None


def load_settings(path: Path) -> Settings:
    """Read settings from *path*, falling back to defaults.

    A missing file is the normal first-run case.  An unreadable or invalid
    file is logged and ignored rather than blocking the application.
    """
    if not path.exists():
        return Settings()
    try:
        return Settings.model_validate(json.loads(path.read_text(encoding="utf-8")))
    except (OSError, json.JSONDecodeError, ValidationError) as exc:
        logger.warning("Ignoring unreadable settings file %s: %s", path, exc)
        return Settings()


def save_settings(settings: Settings, path: Path) -> None:
    """Write *settings* to *path* as JSON, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(settings.model_dump_json(indent=2) + "\n", encoding="utf-8")


def get_api_key(env_file: Path) -> str | None:
    """Return the API key from the environment or *env_file*, if any."""
    key = os.environ.get(API_KEY_VAR)
    if key:
        return key
    if not env_file.exists():
        return None
    return get_key(str(env_file), API_KEY_VAR) or None


def set_api_key(key: str, env_file: Path) -> None:
    """Store *key* in *env_file* (created with owner-only permissions)."""
    env_file.parent.mkdir(parents=True, exist_ok=True)
    if not env_file.exists():
        env_file.touch(mode=0o600)
    set_key(str(env_file), API_KEY_VAR, key)
    logger.info("API key saved: %s", mask_secret(key))


def mask_secret(key: str | None) -> str:
    """Show only the first and last two characters of a secret."""
    if not key:
        return "<none>"
    if len(key) <= 4:
        return "*" * len(key)
    return key[:2] + "*" * (len(key) - 4) + key[-2:]
