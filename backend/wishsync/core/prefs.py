import json
import logging
import os
from pathlib import Path

from wishsync.core.config import Settings
from wishsync.core.errors import LocalStorageFailure


logger = logging.getLogger("wishsync.prefs")


class LocalPreferences:
    """Device-local key-value file (a JSON object), read on every access."""

    def __init__(self, path: str | os.PathLike) -> None:
        self._path = Path(path).expanduser()

    @classmethod
    def from_settings(cls, settings: Settings) -> "LocalPreferences":
        return cls(settings.prefs_path)

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, object]:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as exc:
            raise LocalStorageFailure(f"cannot read preferences {self._path}: {exc}") from exc
        if not raw.strip():
            return {}
        try:
            data = json.loads(raw)
        except ValueError as exc:
            raise LocalStorageFailure(f"corrupt preferences file {self._path}") from exc
        if not isinstance(data, dict):
            raise LocalStorageFailure(f"corrupt preferences file {self._path}")
        return data

    def _store(self, data: dict[str, object]) -> None:
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(data, sort_keys=True), encoding="utf-8")
            os.replace(tmp_path, self._path)
        except OSError as exc:
            raise LocalStorageFailure(f"cannot write preferences {self._path}: {exc}") from exc

    def get_string(self, key: str) -> str | None:
        value = self._load().get(key)
        if value is None:
            return None
        if not isinstance(value, str):
            raise LocalStorageFailure(f"preference {key!r} is not a string")
        return value

    def put_string(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._store(data)
        logger.debug("prefs put key=%s", key)

    def get_string_set(self, key: str) -> frozenset[str]:
        value = self._load().get(key)
        if value is None:
            return frozenset()
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise LocalStorageFailure(f"preference {key!r} is not a list of strings")
        return frozenset(value)

    def put_string_set(self, key: str, values: frozenset[str] | set[str]) -> None:
        data = self._load()
        data[key] = sorted(values)
        self._store(data)
        logger.debug("prefs put key=%s size=%s", key, len(values))
