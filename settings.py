"""Deploy-time pipeline options read from settings.json.

The file is looked up at H1B_SETTINGS when set, otherwise next to this module.
A fresh checkout without settings.json is seeded from settings.example.json.
"""

import json
import os
import shutil
import threading

_dir = os.path.dirname(__file__)
_DEFAULT_PATH = os.path.join(_dir, "settings.json")
_EXAMPLE_PATH = os.path.join(_dir, "settings.example.json")

_settings = None
_lock = threading.Lock()


def settings_path() -> str:
    return os.environ.get("H1B_SETTINGS") or _DEFAULT_PATH


def _seed_from_example(path: str) -> None:
    if os.path.exists(path) or not os.path.exists(_EXAMPLE_PATH):
        return
    shutil.copy2(_EXAMPLE_PATH, path)


def _read(path: str) -> dict:
    with open(path) as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a JSON object, got {type(data).__name__}")
    return data


def get_settings(path: str | None = None) -> dict:
    """Cached settings dict; the first call reads from disk."""
    global _settings
    with _lock:
        if _settings is None:
            path = path or settings_path()
            _seed_from_example(path)
            _settings = _read(path)
        return _settings


def reload_settings():
    """Drop the cache. The next get_settings() reads the file again."""
    global _settings
    with _lock:
        _settings = None
