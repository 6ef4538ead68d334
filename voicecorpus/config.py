"""
Runtime configuration.

Settings come from environment variables, layered over an optional JSON file
so a deployment can ship a ``config.json`` next to the service:

* ``BUCKET_NAME`` – Bucket holding the voice clips (default
  ``common-voice-corpus``).
* ``BATCH_CONCURRENCY`` – Number of batches allowed in flight at once.
* ``LIST_PAGE_SIZE`` – Keys requested per listing page.
* ``FFMPEG_BINARY`` – Converter executable.  Defaults to the one pydub found.
* ``LOG_LEVEL`` – Root logging level for the entrypoint.
* ``PORT`` – Port for the HTTP adapter.
* ``VOICECORPUS_CONFIG`` – Path of the JSON file (default ``config.json``).

Environment variables win over the file.  The extension conventions and the
batch size are fixed and live in this module as constants.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from .errors import ConfigError

DEFAULT_BUCKET_NAME = "common-voice-corpus"
DEFAULT_CONFIG_PATH = "config.json"

BATCH_SIZE = 5
CANONICAL_EXTENSION = ".mp3"
CONVERTIBLE_EXTENSIONS = (".ogg", ".m4a")
TRANSCRIPT_EXTENSION = ".txt"


@dataclass(frozen=True)
class Settings:
    bucket_name: str = DEFAULT_BUCKET_NAME
    batch_concurrency: int = 1
    list_page_size: int = 1000
    ffmpeg_binary: Optional[str] = None
    log_level: str = "INFO"
    port: int = 8080
    config_path: Optional[str] = None


def _read_config_file(path: str) -> Optional[Dict[str, Any]]:
    config_path = Path(path)
    if not config_path.is_file():
        return None
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as exc:
        raise ConfigError(f"Could not read config file {config_path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {config_path} must contain a JSON object")
    return data


def _as_int(name: str, value: Any, *, minimum: int = 1) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from exc
    if number < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {number}")
    return number


def _as_log_level(value: Any) -> str:
    level = str(value).upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ConfigError(f"LOG_LEVEL must be a logging level name, got {value!r}")
    return level


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build :class:`Settings` from the environment and the optional config file.

    Nothing is logged here; logging is usually configured from the result.

    Args:
        environ: Mapping to read variables from.  Defaults to ``os.environ``.

    Raises:
        ConfigError: If the config file is malformed, a numeric value is not
            a positive integer or the log level is unknown.
    """
    env = os.environ if environ is None else environ
    path = env.get("VOICECORPUS_CONFIG", DEFAULT_CONFIG_PATH)
    file_values = _read_config_file(path)
    values: Dict[str, Any] = dict(file_values or {})
    for name in ("BUCKET_NAME", "BATCH_CONCURRENCY", "LIST_PAGE_SIZE", "FFMPEG_BINARY", "LOG_LEVEL", "PORT"):
        if env.get(name):
            values[name] = env[name]

    return Settings(
        bucket_name=values.get("BUCKET_NAME") or DEFAULT_BUCKET_NAME,
        batch_concurrency=_as_int("BATCH_CONCURRENCY", values.get("BATCH_CONCURRENCY", 1)),
        list_page_size=_as_int("LIST_PAGE_SIZE", values.get("LIST_PAGE_SIZE", 1000)),
        ffmpeg_binary=values.get("FFMPEG_BINARY") or None,
        log_level=_as_log_level(values.get("LOG_LEVEL", "INFO")),
        port=_as_int("PORT", values.get("PORT", 8080)),
        config_path=path if file_values is not None else None,
    )
