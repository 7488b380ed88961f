"""Configuration management for the audited AWS executor."""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

_config_logger = logging.getLogger(__name__)


class LoggingSettings(BaseModel):
    level: str = Field(default="INFO", description="Python logging level name")
    file: str | None = Field(default=None, description="Optional log file path")


class ExecutionSettings(BaseModel):
    sdk_timeout_seconds: int = Field(default=30, ge=1, le=300)
    max_output_characters: int = Field(default=20_000, ge=1, le=200_000)
    max_retries: int = Field(default=2, ge=0, le=10)
    retry_base_delay_seconds: float = Field(default=0.5, ge=0.0, le=30.0)
    allow_undeclared_operations: bool = Field(
        default=False,
        description="If True, operations without a declared schema skip validation.",
    )
    operations_path: str = Field(default="./operations.yaml")


class StorageSettings(BaseModel):
    backend: Literal["jsonl", "sqlite"] = Field(default="jsonl")
    audit_log_path: str = Field(default="./data/audit.jsonl")
    sqlite_path: str = Field(default="./data/audit.sqlite")
    sqlite_wal: bool = Field(default=True)


class MonitorSettings(BaseModel):
    rules_path: str = Field(default="./alert_rules.yaml")
    interval_seconds: float = Field(default=60.0, gt=0, le=86400)
    backoff_seconds: float = Field(default=300.0, gt=0, le=86400)


class AWSSettings(BaseModel):
    default_region: str | None = Field(default=None)
    default_profile: str | None = Field(default=None)
    sts_region: str = Field(default="us-east-1")
    verify_identity: bool = Field(
        default=False,
        description="Call sts:GetCallerIdentity when a session is opened.",
    )


class Settings(BaseModel):
    actor: str = Field(default="system")
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    execution: ExecutionSettings = Field(default_factory=ExecutionSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    monitor: MonitorSettings = Field(default_factory=MonitorSettings)
    aws: AWSSettings = Field(default_factory=AWSSettings)


ENV_KEYS = {
    "actor": "AUDIT_ACTOR",
    "log_level": "LOG_LEVEL",
    "log_file": "LOG_FILE",
    "operations_path": "OPERATIONS_PATH",
    "allow_undeclared": "EXECUTION_ALLOW_UNDECLARED",
    "audit_backend": "AUDIT_BACKEND",
    "audit_log_path": "AUDIT_LOG_PATH",
    "sqlite_path": "SQLITE_PATH",
    "rules_path": "ALERT_RULES_PATH",
    "monitor_interval": "MONITOR_INTERVAL_SECONDS",
    "monitor_backoff": "MONITOR_BACKOFF_SECONDS",
    "aws_region": "AWS_DEFAULT_REGION",
    "aws_profile": "AWS_PROFILE",
    "max_retries": "AWS_AUDIT_MAX_RETRIES",
}

_TRUE_VALUES = frozenset({"1", "true", "yes"})


def _project_root() -> Path:
    return Path(__file__).resolve().parents[2]


def _resolve_path(path: str) -> str:
    candidate = Path(path)
    root = _project_root().resolve()
    if candidate.is_absolute():
        resolved = candidate.resolve()
    else:
        resolved = (root / candidate).resolve()
    if not resolved.is_relative_to(root):
        raise ValueError(f"Path traversal detected: '{path}' resolves outside project root")
    return str(resolved)


def _env_bool(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        _config_logger.warning(
            "Invalid integer value for %s: %r, using default %d", key, value, default
        )
        return default


def _env_float(key: str, default: float) -> float:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError:
        _config_logger.warning(
            "Invalid float value for %s: %r, using default %s", key, value, default
        )
        return default


def load_settings() -> Settings:
    """Load configuration and cache the result."""

    return _load_settings_cached()


@lru_cache(maxsize=1)
def _load_settings_cached() -> Settings:
    load_dotenv(dotenv_path=_project_root() / ".env")
    log_file_env = os.getenv(ENV_KEYS["log_file"])

    settings_data: dict[str, object] = {
        "actor": os.getenv(ENV_KEYS["actor"], Settings().actor),
        "logging": {
            "level": os.getenv(ENV_KEYS["log_level"], LoggingSettings().level),
            "file": _resolve_path(log_file_env) if log_file_env else None,
        },
        "execution": {
            "sdk_timeout_seconds": _env_int(
                "SDK_TIMEOUT_SECONDS",
                ExecutionSettings().sdk_timeout_seconds,
            ),
            "max_output_characters": _env_int(
                "MAX_OUTPUT_CHARACTERS",
                ExecutionSettings().max_output_characters,
            ),
            "max_retries": _env_int(
                ENV_KEYS["max_retries"],
                ExecutionSettings().max_retries,
            ),
            "retry_base_delay_seconds": _env_float(
                "RETRY_BASE_DELAY_SECONDS",
                ExecutionSettings().retry_base_delay_seconds,
            ),
            "allow_undeclared_operations": _env_bool(
                ENV_KEYS["allow_undeclared"],
                ExecutionSettings().allow_undeclared_operations,
            ),
            "operations_path": _resolve_path(
                os.getenv(ENV_KEYS["operations_path"], ExecutionSettings().operations_path)
            ),
        },
        "storage": {
            "backend": os.getenv(ENV_KEYS["audit_backend"], StorageSettings().backend),
            "audit_log_path": _resolve_path(
                os.getenv(ENV_KEYS["audit_log_path"], StorageSettings().audit_log_path)
            ),
            "sqlite_path": _resolve_path(
                os.getenv(ENV_KEYS["sqlite_path"], StorageSettings().sqlite_path)
            ),
            "sqlite_wal": _env_bool("SQLITE_WAL", StorageSettings().sqlite_wal),
        },
        "monitor": {
            "rules_path": _resolve_path(
                os.getenv(ENV_KEYS["rules_path"], MonitorSettings().rules_path)
            ),
            "interval_seconds": _env_float(
                ENV_KEYS["monitor_interval"],
                MonitorSettings().interval_seconds,
            ),
            "backoff_seconds": _env_float(
                ENV_KEYS["monitor_backoff"],
                MonitorSettings().backoff_seconds,
            ),
        },
        "aws": {
            "default_region": os.getenv("AWS_REGION") or os.getenv(ENV_KEYS["aws_region"]),
            "default_profile": os.getenv(ENV_KEYS["aws_profile"]),
            "sts_region": os.getenv("AWS_STS_REGION", AWSSettings().sts_region),
            "verify_identity": _env_bool("AWS_VERIFY_IDENTITY", AWSSettings().verify_identity),
        },
    }

    try:
        settings = Settings.model_validate(settings_data)
    except ValidationError as exc:
        raise RuntimeError(f"Invalid configuration: {exc}") from exc

    if settings.monitor.backoff_seconds < settings.monitor.interval_seconds:
        raise RuntimeError(
            "Invalid configuration: MONITOR_BACKOFF_SECONDS must not be shorter than "
            "MONITOR_INTERVAL_SECONDS"
        )

    Path(settings.storage.audit_log_path).parent.mkdir(parents=True, exist_ok=True)
    Path(settings.storage.sqlite_path).parent.mkdir(parents=True, exist_ok=True)

    return settings
