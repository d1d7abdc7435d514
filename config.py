"""Simple JSON-based config store and the API key store built on it."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

from interfaces import KeyValueStore

API_KEY_KEY = "gemini_api_key"
DEFAULT_HOTKEY = "Key.f8"
DEFAULT_RECOGNITION_MODEL = "gemini-pro-vision"
DEFAULT_RECOGNITION_TIMEOUT_S = 30.0
DEFAULT_TRANSLATION_TIMEOUT_S = 10.0


class JsonConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or Path.home() / ".config" / "clipboard_translate" / "config.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def get(self, key: str) -> Optional[str]:
        value = self._read_all().get(key)
        if value is None:
            return None
        return str(value)

    def set(self, key: str, value: str) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def get_hotkey(self) -> str:
        return self.get("hotkey") or DEFAULT_HOTKEY

    def set_hotkey(self, hotkey: str) -> None:
        self.set("hotkey", hotkey)

    def get_recognition_model(self) -> str:
        return self.get("recognition_model") or DEFAULT_RECOGNITION_MODEL

    def get_recognition_timeout_s(self) -> float:
        return self._get_float("recognition_timeout_s", DEFAULT_RECOGNITION_TIMEOUT_S)

    def get_translation_timeout_s(self) -> float:
        return self._get_float("translation_timeout_s", DEFAULT_TRANSLATION_TIMEOUT_S)

    def _get_float(self, key: str, default: float) -> float:
        raw = self._read_all().get(key)
        try:
            value = float(raw)
        except (TypeError, ValueError):
            return default
        return value if value > 0 else default

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict) -> None:
        self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")


class CredentialStore:
    """Persists the single API key string on top of a key/value store."""

    def __init__(self, store: KeyValueStore, key: str = API_KEY_KEY) -> None:
        self._store = store
        self._key = key

    def save(self, value: str) -> None:
        self._store.set(self._key, value.strip())

    def load(self) -> str:
        value = self._store.get(self._key)
        return value if isinstance(value, str) else ""
