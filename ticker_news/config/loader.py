"""Configuration loading helpers for ticker-news."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from threading import Lock

import yaml
from pydantic import ValidationError

from ..errors import ConfigError
from .models import AppSettings

SETTINGS_FILENAME = "settings.yaml"
HOME_ENV_VAR = "TICKER_NEWS_HOME"


def _read_file(path: Path) -> dict:
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration file must contain a mapping: {path}")
    return data


def _write_file(path: Path, payload: dict) -> None:
    with path.open("w", encoding="utf-8") as stream:
        yaml.safe_dump(payload, stream, allow_unicode=True, sort_keys=False)


@dataclass(slots=True)
class ConfigLocator:
    """Resolve important paths from project root."""

    project_root: Path | None = None
    data_dir: Path | None = None
    logs_dir: Path | None = None

    def __post_init__(self) -> None:
        env_root = os.environ.get(HOME_ENV_VAR)
        if self.project_root is not None:
            root = Path(self.project_root).resolve()
        elif env_root:
            root = Path(env_root).expanduser().resolve()
        else:
            root = Path.cwd().resolve()
        self.project_root = root
        self.data_dir = (root / "data").resolve()
        self.logs_dir = (root / "logs").resolve()
        self.ensure_directories()

    def ensure_directories(self) -> None:
        for directory in (self.data_dir, self.logs_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def settings_path(self) -> Path:
        return self.data_dir / SETTINGS_FILENAME


class ConfigRepository:
    """Settings IO with schema validation and modification-time based reload."""

    def __init__(self, locator: ConfigLocator | None = None) -> None:
        self.locator = locator or ConfigLocator()
        self._cache: AppSettings | None = None
        self._mtime: float | None = None
        self._lock = Lock()

    def load_settings(self) -> AppSettings:
        with self._lock:
            if self._cache is not None:
                return self._cache
        path = self.locator.settings_path()
        if not path.exists():
            settings = AppSettings()
            self.save_settings(settings)
            return settings
        settings = self._parse(path)
        with self._lock:
            self._cache = settings
            self._mtime = path.stat().st_mtime
        return settings

    def save_settings(self, settings: AppSettings) -> None:
        path = self.locator.settings_path()
        _write_file(path, settings.model_dump(mode="json"))
        with self._lock:
            self._cache = settings
            self._mtime = path.stat().st_mtime

    def reload_if_changed(self) -> bool:
        """Re-read the settings file when it changed on disk.

        Returns True when a new configuration was loaded. An invalid file raises
        ``ConfigError`` and leaves the previously loaded settings in place.
        """

        path = self.locator.settings_path()
        if not path.exists():
            return False
        mtime = path.stat().st_mtime
        with self._lock:
            if self._mtime is not None and mtime == self._mtime:
                return False
        settings = self._parse(path)
        with self._lock:
            self._cache = settings
            self._mtime = mtime
        return True

    def database_path(self) -> Path:
        return self.load_settings().resolved_database_path(self.locator.project_root)

    @staticmethod
    def _parse(path: Path) -> AppSettings:
        try:
            payload = _read_file(path)
            return AppSettings.model_validate(payload)
        except (ValidationError, yaml.YAMLError) as exc:
            raise ConfigError(f"Invalid settings file {path}: {exc}") from exc


__all__ = ["ConfigLocator", "ConfigRepository", "HOME_ENV_VAR"]
