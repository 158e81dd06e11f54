"""JSON file store for locally persisted credentials and overrides."""

import json
import logging
from pathlib import Path
from typing import List, Optional, Union

logger = logging.getLogger(__name__)


class LocalCredentialStore:
    """
    Persisted generation credentials and the runtime model override.

    File layout:
        {"gemini_api_keys": ["...", "..."], "model_override": "gemini-2.0-flash"}

    A missing or unreadable file reads as empty.
    """

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path).expanduser()

    @property
    def path(self) -> Path:
        return self._path

    def get_api_keys(self) -> List[str]:
        """Return persisted keys in slot order."""
        keys = self._read_all().get("gemini_api_keys", [])
        if not isinstance(keys, list):
            return []
        return [str(k) for k in keys]

    def set_api_keys(self, keys: List[str]) -> None:
        data = self._read_all()
        data["gemini_api_keys"] = list(keys)
        self._write_all(data)

    def get_model_override(self) -> Optional[str]:
        value = self._read_all().get("model_override")
        return str(value) if value else None

    def set_model_override(self, model: Optional[str]) -> None:
        data = self._read_all()
        if model:
            data["model_override"] = model
        else:
            data.pop("model_override", None)
        self._write_all(data)

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Ignoring unreadable credential store {self._path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(data, indent=2), encoding="utf-8")
