from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict

_LOGGER = logging.getLogger("kdindex")

_DEFAULT_METRIC = "squared_euclidean"
_DEFAULT_BUILD_WORKERS = 1
_DEFAULT_PARALLEL_THRESHOLD = 4096
_SUPPORTED_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG", "NOTSET"}


def _bool_from_env(value: str | None, *, default: bool) -> bool:
    if value is None:
        return default
    value = value.strip().lower()
    if value in {"1", "true", "yes", "on"}:
        return True
    if value in {"0", "false", "no", "off"}:
        return False
    return default


def _parse_optional_int(raw: str | None) -> int | None:
    if raw is None or raw.strip() == "":
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"Invalid integer value '{raw}'") from exc


def _parse_positive_int(raw: str | None, *, name: str, default: int) -> int:
    value = _parse_optional_int(raw)
    if value is None:
        return default
    if value <= 0:
        raise ValueError(f"{name} must be a positive integer, got {value}.")
    return value


def _normalise_log_level(value: str | None) -> str:
    if value is None or value.strip() == "":
        return "INFO"
    level = value.strip().upper()
    if level not in _SUPPORTED_LOG_LEVELS:
        raise ValueError(
            f"Unsupported log level '{value}'. Expected one of {sorted(_SUPPORTED_LOG_LEVELS)}."
        )
    return level


@dataclass(frozen=True)
class RuntimeConfig:
    enable_diagnostics: bool
    log_level: str
    metric: str
    build_workers: int
    parallel_threshold: int

    @property
    def parallel_build(self) -> bool:
        return self.build_workers > 1

    @classmethod
    def from_env(cls) -> "RuntimeConfig":
        enable_diagnostics = _bool_from_env(
            os.getenv("KDINDEX_ENABLE_DIAGNOSTICS"), default=True
        )
        log_level = _normalise_log_level(os.getenv("KDINDEX_LOG_LEVEL"))
        metric = (
            os.getenv("KDINDEX_METRIC", _DEFAULT_METRIC).strip().lower()
            or _DEFAULT_METRIC
        )
        build_workers = _parse_positive_int(
            os.getenv("KDINDEX_BUILD_WORKERS"),
            name="KDINDEX_BUILD_WORKERS",
            default=_DEFAULT_BUILD_WORKERS,
        )
        parallel_threshold = _parse_positive_int(
            os.getenv("KDINDEX_PARALLEL_THRESHOLD"),
            name="KDINDEX_PARALLEL_THRESHOLD",
            default=_DEFAULT_PARALLEL_THRESHOLD,
        )
        return cls(
            enable_diagnostics=enable_diagnostics,
            log_level=log_level,
            metric=metric,
            build_workers=build_workers,
            parallel_threshold=parallel_threshold,
        )


def _configure_logging(level: str) -> None:
    logger = logging.getLogger("kdindex")
    logger.setLevel(level)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setLevel(level)
        formatter = logging.Formatter("%(levelname)s %(name)s: %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)


@lru_cache(maxsize=None)
def runtime_config() -> RuntimeConfig:
    config = RuntimeConfig.from_env()
    _configure_logging(config.log_level)
    return config


def reset_runtime_config_cache() -> None:
    runtime_config.cache_clear()


def describe_runtime() -> Dict[str, Any]:
    """Return a serialisable view of the active runtime configuration."""

    config = runtime_config()
    return {
        "enable_diagnostics": config.enable_diagnostics,
        "log_level": config.log_level,
        "metric": config.metric,
        "build_workers": config.build_workers,
        "parallel_threshold": config.parallel_threshold,
        "parallel_build": config.parallel_build,
    }


__all__ = [
    "RuntimeConfig",
    "describe_runtime",
    "reset_runtime_config_cache",
    "runtime_config",
]
