from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator

import psutil

from kdindex import config as kd_config


@dataclass
class OperationLog:
    """Metadata accumulated while an instrumented operation runs."""

    op: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    def add_metadata(self, **values: Any) -> None:
        self.metadata.update(values)


@dataclass(frozen=True)
class _ResourceSnapshot:
    wall: float
    cpu_user: float | None
    rss: int | None


def _snapshot(process: psutil.Process | None) -> _ResourceSnapshot:
    wall = time.perf_counter()
    if process is None:
        return _ResourceSnapshot(wall=wall, cpu_user=None, rss=None)
    cpu = process.cpu_times()
    memory = process.memory_info()
    return _ResourceSnapshot(wall=wall, cpu_user=float(cpu.user), rss=int(memory.rss))


def _format_value(value: Any) -> str:
    if isinstance(value, float):
        return f"{value:.6g}"
    return str(value)


def _format_message(
    op_log: OperationLog, before: _ResourceSnapshot, after: _ResourceSnapshot
) -> str:
    wall_ms = (after.wall - before.wall) * 1e3
    if before.cpu_user is None or after.cpu_user is None:
        cpu_user_ms = "NA"
    else:
        cpu_user_ms = f"{(after.cpu_user - before.cpu_user) * 1e3:.3f}"
    if before.rss is None or after.rss is None:
        rss_delta = "NA"
    else:
        rss_delta = str(after.rss - before.rss)
    parts = [
        f"op={op_log.op}",
        f"wall_ms={wall_ms:.3f}",
        f"cpu_user_ms={cpu_user_ms}",
        f"rss_delta={rss_delta}",
    ]
    parts.extend(
        f"{key}={_format_value(value)}" for key, value in op_log.metadata.items()
    )
    return " ".join(parts)


@contextmanager
def log_operation(logger: logging.Logger, op: str) -> Iterator[OperationLog]:
    """Time ``op`` and emit a single resource summary line when it completes.

    CPU and RSS polling is skipped when diagnostics are disabled through
    ``KDINDEX_ENABLE_DIAGNOSTICS``; those fields are then reported as ``NA``.
    Nothing is logged if the wrapped block raises.
    """

    runtime = kd_config.runtime_config()
    process = psutil.Process() if runtime.enable_diagnostics else None
    op_log = OperationLog(op=op)
    before = _snapshot(process)
    yield op_log
    after = _snapshot(process)
    if logger.isEnabledFor(logging.INFO):
        logger.info(_format_message(op_log, before, after))


__all__ = ["OperationLog", "log_operation"]
