"""
Structured logging configuration for the destination enrichment pipeline.

Provides JSON-formatted logs with consistent structure for
monitoring batch runs, plus a human-readable console mode
rendered through structlog.
"""

import json
import logging
import sys
import time
import uuid
from collections import Counter, defaultdict
from contextvars import ContextVar
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import wraps
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Dict

import structlog

# ============================================================================
# Context Variables for Run Tracking
# ============================================================================

# Run ID for correlation across log entries of one pipeline run
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

ROOT_LOGGER_NAME = "travel_enrichment"


def get_request_id() -> str:
    """Get current run ID or generate new one."""
    rid = request_id_var.get()
    if not rid:
        rid = new_request_id()
    return rid


def new_request_id() -> str:
    """Start a new run ID for the current context and return it."""
    rid = str(uuid.uuid4())[:8]
    request_id_var.set(rid)
    return rid


# ============================================================================
# Log Directory Setup
# ============================================================================

LOG_DIR = Path.cwd() / "logs"
LOG_FILE = LOG_DIR / "enrichment.log"


def ensure_log_dir() -> None:
    """Ensure log directory exists."""
    LOG_DIR.mkdir(parents=True, exist_ok=True)


# ============================================================================
# JSON Log Formatter
# ============================================================================

_RESERVED_ATTRS = frozenset((
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "message", "taskName",
))


class JSONFormatter(logging.Formatter):
    """
    Formatter that outputs one JSON object per log record.

    Format:
    {
        "timestamp": "2026-02-04T10:30:00.000000Z",
        "level": "INFO",
        "request_id": "abc12345",
        "component": "travel_enrichment.resolver",
        "message": "Location resolved",
        "context": {...},
        "metrics": {...}
    }
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
            "level": record.levelname,
            "request_id": get_request_id(),
            "component": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
            }

        context = {}
        metrics_fields = {}
        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS:
                continue
            # Numeric measurements are split out from descriptive context
            if key.endswith("_ms") or key.endswith("_count") or key.endswith("_rate"):
                metrics_fields[key] = value
            else:
                context[key] = value

        if context:
            log_entry["context"] = context
        if metrics_fields:
            log_entry["metrics"] = metrics_fields

        return json.dumps(log_entry, default=str)


def console_formatter() -> logging.Formatter:
    """Human-readable formatter for interactive runs, rendered by structlog."""
    return structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        foreign_pre_chain=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.ExtraAdder(),
            structlog.processors.TimeStamper(fmt="iso"),
        ],
    )


# ============================================================================
# Logger Setup
# ============================================================================

def setup_logging(
    level: str = "INFO",
    json_output: bool = True,
    log_to_file: bool = False,
    log_to_console: bool = True
) -> logging.Logger:
    """
    Configure application logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_output: If True, output JSON format; if False, structlog console format
        log_to_file: If True, also write logs to LOG_FILE
        log_to_console: If True, write logs to stdout

    Returns:
        Configured package root logger
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper()))
    logger.handlers = []

    formatter = JSONFormatter() if json_output else console_formatter()

    if log_to_console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if log_to_file:
        ensure_log_dir()
        file_handler = logging.FileHandler(LOG_FILE, encoding="utf-8")
        file_handler.setFormatter(JSONFormatter())
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for a specific component.

    Args:
        name: Component name (e.g., 'resolver', 'bulk_writer', 'analyzer')

    Returns:
        Logger instance
    """
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


# ============================================================================
# Logging Decorators
# ============================================================================

def log_api_call(api_name: str) -> Callable:
    """
    Decorator for outbound provider calls: logs completion or failure
    with latency and records both in the metrics collector.

    Safe to use from worker threads (the throughput queries run two at once).

    Args:
        api_name: Provider name used as the metrics key
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            logger = get_logger("api_client")
            started = time.perf_counter()
            fields = {"api": api_name, "operation": func.__name__}
            logger.debug(f"{api_name}.{func.__name__} started", extra=fields)

            try:
                result = func(*args, **kwargs)
            except Exception as e:
                elapsed_ms = (time.perf_counter() - started) * 1000
                metrics.record_api_latency(api_name, elapsed_ms)
                metrics.record_error(f"{api_name}_error")
                logger.error(
                    f"{api_name}.{func.__name__} failed: {e}",
                    extra={**fields, "latency_ms": round(elapsed_ms, 2), "error_type": type(e).__name__}
                )
                raise

            elapsed_ms = (time.perf_counter() - started) * 1000
            metrics.record_api_latency(api_name, elapsed_ms)
            logger.info(
                f"{api_name}.{func.__name__} completed",
                extra={**fields, "latency_ms": round(elapsed_ms, 2)}
            )
            return result

        return wrapper
    return decorator


# ============================================================================
# Metrics Collection
# ============================================================================

@dataclass
class LatencyStats:
    count: int = 0
    total_ms: float = 0.0
    min_ms: float = float("inf")
    max_ms: float = 0.0

    def add(self, latency_ms: float) -> None:
        self.count += 1
        self.total_ms += latency_ms
        self.min_ms = min(self.min_ms, latency_ms)
        self.max_ms = max(self.max_ms, latency_ms)

    def as_dict(self) -> Dict[str, float]:
        return {
            "count": self.count,
            "total_ms": self.total_ms,
            "min_ms": self.min_ms,
            "max_ms": self.max_ms,
            "avg_ms": self.total_ms / self.count if self.count else 0,
        }


class MetricsCollector:
    """
    In-process run metrics, shared by every component of a pipeline run.

    Tracks provider latency per API, error counts by type, and run
    counters (resolutions, missing signals, committed writes).
    """

    def __init__(self):
        self._lock = Lock()
        self._latency: Dict[str, LatencyStats] = defaultdict(LatencyStats)
        self._errors: Counter = Counter()
        self._counters: Counter = Counter()

    def record_api_latency(self, api: str, latency_ms: float) -> None:
        with self._lock:
            self._latency[api].add(latency_ms)

    def record_error(self, error_type: str) -> None:
        with self._lock:
            self._errors[error_type] += 1

    def increment(self, counter: str, amount: int = 1) -> None:
        with self._lock:
            self._counters[counter] += amount

    def get_counter(self, counter: str) -> int:
        with self._lock:
            return self._counters[counter]

    def get_metrics(self) -> Dict[str, Any]:
        """Snapshot of everything recorded so far."""
        with self._lock:
            return {
                "api_requests": {api: stats.as_dict() for api, stats in self._latency.items()},
                "errors": dict(self._errors),
                "counters": dict(self._counters),
            }

    def reset(self) -> None:
        with self._lock:
            self._latency.clear()
            self._errors.clear()
            self._counters.clear()


metrics = MetricsCollector()


# ============================================================================
# Initialize Default Logger
# ============================================================================

_default_logger = setup_logging(level="INFO", json_output=True)
