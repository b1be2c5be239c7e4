"""
User settings persisted across sessions.

Settings live as one JSON object in the platform config directory. Missing or
malformed files fall back to defaults; unknown keys are ignored.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

from platformdirs import user_config_dir

from .errors import InvalidInputError
from .filtering import DEFAULT_MAX_FILE_SIZE
from .models import MergeOptions, ProcessingOptions


APP_NAME = "contexter"
SETTINGS_FILENAME = "settings.json"
SETTINGS_PATH = Path(user_config_dir(APP_NAME, appauthor=False)) / SETTINGS_FILENAME

_SIZE_MULTIPLIERS = {"k": 1024, "m": 1024**2, "g": 1024**3}


def parse_size(size_str: str) -> Optional[int]:
    """Parse size string (e.g., '2M', '500k') to bytes. '0' means no limit."""
    text = str(size_str).strip().lower()
    if text.endswith("b") and len(text) > 1 and text[-2] in _SIZE_MULTIPLIERS:
        text = text[:-1]
    if not text:
        raise InvalidInputError("Empty size")
    try:
        if text[-1] in _SIZE_MULTIPLIERS:
            value = int(text[:-1]) * _SIZE_MULTIPLIERS[text[-1]]
        else:
            value = int(text)
    except ValueError:
        raise InvalidInputError(f"Invalid size format: {size_str!r}") from None
    if value < 0:
        raise InvalidInputError(f"Size must not be negative: {size_str!r}")
    return value or None


@dataclass(frozen=True)
class Settings:
    """User-facing settings. ``max_file_size=None`` disables the size limit."""
    hide_empty_folders: bool = True
    show_token_count: bool = True
    max_file_size: Optional[int] = DEFAULT_MAX_FILE_SIZE
    include_path_headers: bool = True

    def __post_init__(self) -> None:
        for name in ("hide_empty_folders", "show_token_count", "include_path_headers"):
            if not isinstance(getattr(self, name), bool):
                raise InvalidInputError(f"Setting '{name}' must be true or false")
        size = self.max_file_size
        if size is not None and (isinstance(size, bool) or not isinstance(size, int) or size < 0):
            raise InvalidInputError("Setting 'max_file_size' must be a non-negative integer or null")

    def processing_options(self) -> ProcessingOptions:
        return ProcessingOptions(
            hide_empty_folders=self.hide_empty_folders,
            show_token_count=self.show_token_count,
        )

    def merge_options(self, **extra: bool) -> MergeOptions:
        return MergeOptions(include_path_headers=self.include_path_headers, **extra)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Settings:
        """Build from a decoded JSON object, skipping unknown or invalid keys."""
        defaults = cls()
        known = {f.name for f in fields(cls)}
        values: Dict[str, Any] = {}
        for key, value in data.items():
            if key not in known:
                logging.debug(f"Ignoring unknown setting '{key}'")
                continue
            try:
                cls(**{**asdict(defaults), key: value})
            except InvalidInputError as e:
                logging.warning(f"{e}; using default")
                continue
            values[key] = value
        return cls(**values)


def load_settings(path: Optional[Path] = None) -> Settings:
    """Load persisted settings, falling back to defaults."""
    path = path or SETTINGS_PATH
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return Settings()
    except (OSError, ValueError) as e:
        logging.warning(f"Could not load settings from {path}: {e}")
        return Settings()
    if not isinstance(data, dict):
        logging.warning(f"Ignoring settings file {path}: expected a JSON object")
        return Settings()
    return Settings.from_dict(data)


def save_settings(settings: Settings, path: Optional[Path] = None) -> Optional[Path]:
    """Persist settings as pretty-printed JSON. Returns the path written, or None on failure."""
    path = path or SETTINGS_PATH
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(settings.to_dict(), indent=2) + "\n", encoding="utf-8")
    except OSError as e:
        logging.warning(f"Could not save settings to {path}: {e}")
        return None
    logging.info(f"Settings saved to {path}")
    return path
