"""
quill_engine/config.py -- Engine settings and logging setup.

Settings are read from ``settings.json`` in the platform user config
directory (via platformdirs), then overridden by ``QUILL_*`` environment
variables.  A missing or corrupt settings file silently yields defaults.

Usage::

    from quill_engine.config import load_settings, configure_logging

    settings = load_settings()
    configure_logging(settings)
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from platformdirs import user_config_dir
from pydantic import BaseModel, Field, ValidationError

from quill_engine.utils import safe_read_json

logger = logging.getLogger(__name__)

_APP_NAME = "QuillEngine"
_APP_AUTHOR = "Quilliam"

AUTO_COMMIT_THRESHOLD = 0.85
DEFAULT_PATCH_CONFIDENCE = 0.65

_ENV_OVERRIDES = {
    "QUILL_AUTO_COMMIT_THRESHOLD": "auto_commit_threshold",
    "QUILL_DEFAULT_PATCH_CONFIDENCE": "default_patch_confidence",
    "QUILL_AUTO_APPLY": "auto_apply_enabled",
    "QUILL_LOG_LEVEL": "log_level",
}


class EngineSettings(BaseModel):
    """Tunable behaviour of the edit lifecycle engine."""

    auto_commit_threshold: float = Field(default=AUTO_COMMIT_THRESHOLD, ge=0.0, le=1.0)
    default_patch_confidence: float = Field(default=DEFAULT_PATCH_CONFIDENCE, ge=0.0, le=1.0)
    auto_apply_enabled: bool = True
    log_level: str = "INFO"


def get_settings_path() -> Path:
    """Return the platform-appropriate path of ``settings.json``."""
    return Path(user_config_dir(_APP_NAME, _APP_AUTHOR)) / "settings.json"


def load_settings(path: str | os.PathLike | None = None, environ=None) -> EngineSettings:
    """Load settings from *path* (default: user config dir) plus environment.

    Parameters
    ----------
    path : str or PathLike, optional
        Explicit settings file.  Defaults to ``get_settings_path()``.
    environ : Mapping, optional
        Environment to read overrides from (default ``os.environ``).

    Returns
    -------
    EngineSettings
    """
    environ = os.environ if environ is None else environ
    data = safe_read_json(path or get_settings_path(), default={})
    if not isinstance(data, dict):
        logger.warning("Ignoring settings file with non-object content")
        data = {}

    for env_name, field_name in _ENV_OVERRIDES.items():
        if env_name in environ:
            data[field_name] = environ[env_name]

    try:
        return EngineSettings.model_validate(data)
    except ValidationError:
        logger.warning("Invalid engine settings, falling back to defaults", exc_info=True)
        return EngineSettings()


def configure_logging(settings: EngineSettings) -> None:
    """Apply ``settings.log_level`` to the ``quill_engine`` logger tree."""
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        logger.warning("Unknown log level %r, using INFO", settings.log_level)
        level = logging.INFO
    logging.getLogger("quill_engine").setLevel(level)
