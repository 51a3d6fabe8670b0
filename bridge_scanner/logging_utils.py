"""Centralized logging utilities for bridge scanning runs.

Besides ``configure_logging`` (one log file per run plus a console handler on
stderr, leaving stdout free for bridge lines) this module provides two timing
helpers:

- ``perf_span``: a context manager that times a block and logs one structured
  ``event=perf`` line with the duration and success state.
- ``perf``: a decorator that names the span after the wrapped function.

Both helpers write to the logger hierarchy configured by ``configure_logging``
so timings appear in the per-run log file.
"""

import functools
import logging
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Mapping, Optional

from bridge_scanner.config import AppConfig

DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s [run=%(run_id)s] %(message)s"
PERF_LINE = "event=perf name=%s duration_ms=%.3f success=%s tags=%s"


class _RunContextFilter(logging.Filter):
    """Inject the current run identifier into every log record."""

    def __init__(self, run_id: str) -> None:
        super().__init__()
        self._run_id = run_id

    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = self._run_id
        return True


def _sanitize_run_id(run_id: str) -> str:
    """Convert a run identifier into a filesystem-friendly token."""
    return "".join(ch if ch.isalnum() or ch in ("-", "_") else "-" for ch in run_id)


def generate_run_id() -> str:
    """Return a default run identifier based on the current UTC timestamp."""
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def configure_logging(
    config: AppConfig,
    run_id: Optional[str] = None,
    include_console: bool = True,
    fmt: str = DEFAULT_LOG_FORMAT,
) -> Path:
    """Configure root logging handlers for the current run.

    Args:
        config: Supplies the log directory, level and application name.
        run_id: Identifier stamped on every record; defaults to a UTC timestamp.
        include_console: Also log to stderr.
        fmt: Format string shared by all handlers.

    Returns:
        Path of the run's log file.
    """
    resolved_run_id = run_id or generate_run_id()

    log_dir = config.log_directory
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / f"{config.app_name}-{_sanitize_run_id(resolved_run_id)}.log"

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    handlers = [logging.FileHandler(log_path, encoding="utf-8")]
    if include_console:
        handlers.append(logging.StreamHandler(sys.stderr))

    for handler in handlers:
        handler.setFormatter(logging.Formatter(fmt))
        handler.addFilter(_RunContextFilter(resolved_run_id))
        root_logger.addHandler(handler)

    root_logger.setLevel(config.numeric_log_level)
    return log_path


def _format_tags(tags: Optional[Mapping[str, Any]]) -> str:
    if not tags:
        return "{}"
    return "{" + ", ".join(f"{k}={tags[k]!r}" for k in sorted(tags)) + "}"


class perf_span:
    """Time a block of code and log its duration on exit.

    Example:
        with perf_span("scan.batch", tags={"attempt": 2}):
            probe_batch(batch, 10.0, sink)

    Exceptions are never suppressed; they are logged as ``success=false``.
    """

    def __init__(
        self,
        name: str,
        *,
        tags: Optional[Mapping[str, Any]] = None,
        level: int = logging.INFO,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._name = name
        self._tags = dict(tags or {})
        self._level = level
        self._logger = logger or logging.getLogger(__name__)
        self._start_ns: Optional[int] = None

    def __enter__(self) -> "perf_span":
        self._start_ns = time.monotonic_ns()
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        end_ns = time.monotonic_ns()
        duration_ms = (end_ns - (self._start_ns or end_ns)) / 1_000_000.0
        self._logger.log(
            self._level,
            PERF_LINE,
            self._name,
            duration_ms,
            str(exc_type is None).lower(),
            _format_tags(self._tags),
        )
        return False


def perf(
    name: Optional[str] = None,
    *,
    tags: Optional[Mapping[str, Any]] = None,
    level: int = logging.INFO,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Decorator that logs the execution time of a function.

    Args:
        name: Optional span name; defaults to ``<module>.<qualname>``.
        tags: Optional metadata included in the log line.
        level: Logging level to use.
    """

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        span_name = name or f"{func.__module__}.{func.__qualname__}"
        logger = logging.getLogger(func.__module__)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            with perf_span(span_name, tags=tags, level=level, logger=logger):
                return func(*args, **kwargs)

        return wrapper

    return decorator


__all__ = [
    "configure_logging",
    "generate_run_id",
    "DEFAULT_LOG_FORMAT",
    "perf",
    "perf_span",
]
