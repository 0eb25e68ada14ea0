from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict

import yaml
from pydantic import BaseModel, Field


DEFAULT_SETTINGS_PATH = os.environ.get("TASKSERIES_SETTINGS", "/data/settings.yml")


class AppSettings(BaseModel):
    name: str = "TaskSeries"
    host: str = "0.0.0.0"  # nosec B104
    port: int = 8080


class SecuritySettings(BaseModel):
    jwt_secret: str = "CHANGE_ME_JWT_SECRET"
    jwt_algorithm: str = "HS256"
    token_minutes: int = 60 * 24


class DatabaseSettings(BaseModel):
    path: str = "/data/taskseries.db"


class RecurrenceSettings(BaseModel):
    # Hard ceiling on generated occurrences per rule, regardless of count/end_date.
    max_occurrences: int = Field(default=200, ge=1, le=5000)


class ReconcileSettings(BaseModel):
    # 0 disables the empty-series sweep.
    interval_minutes: int = 0


class RateLimitSettings(BaseModel):
    # Per caller (token subject, else client address), over sliding windows.
    enabled: bool = True
    per_minute: int = Field(default=50, ge=1)
    per_fifteen_minutes: int = Field(default=200, ge=1)
    per_hour: int = Field(default=800, ge=1)
    # Per request path, across all callers.
    per_route_fifteen_minutes: int = Field(default=1200, ge=1)


class LoggingSettings(BaseModel):
    level: str = "INFO"
    dir: str = "/data/logs"


class Settings(BaseModel):
    app: AppSettings = Field(default_factory=AppSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    recurrence: RecurrenceSettings = Field(default_factory=RecurrenceSettings)
    reconcile: ReconcileSettings = Field(default_factory=ReconcileSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


def _ensure_settings_file(path: str) -> None:
    p = Path(path)
    if p.exists():
        return

    p.parent.mkdir(parents=True, exist_ok=True)

    sample = Path(__file__).resolve().parent.parent / "settings.sample.yml"
    if sample.exists():
        p.write_text(sample.read_text(encoding="utf-8"), encoding="utf-8")
    else:
        # Minimal fallback
        p.write_text(
            "app:\n  name: 'TaskSeries'\n  host: '0.0.0.0'\n  port: 8080\n"
            "security:\n  jwt_secret: 'CHANGE_ME_JWT_SECRET'\n"
            "database:\n  path: '/data/taskseries.db'\n"
            "recurrence:\n  max_occurrences: 200\n"
            "reconcile:\n  interval_minutes: 0\n"
            "rate_limit:\n  enabled: true\n"
            "logging:\n  level: 'INFO'\n  dir: '/data/logs'\n",
            encoding="utf-8",
        )


def _load_yaml(path: str) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError("settings.yml must contain a YAML mapping at the root")
    return data


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    settings_path = os.environ.get("TASKSERIES_SETTINGS", DEFAULT_SETTINGS_PATH)
    _ensure_settings_file(settings_path)
    raw = _load_yaml(settings_path)
    s = Settings.model_validate(raw)

    # Allow env overrides for secrets.
    jwt_secret = os.environ.get("TASKSERIES_JWT_SECRET")
    if jwt_secret:
        s.security.jwt_secret = jwt_secret

    port_env = os.environ.get("PORT") or os.environ.get("TASKSERIES_PORT")
    if port_env:
        try:
            s.app.port = int(port_env)
        except ValueError:
            pass

    return s
