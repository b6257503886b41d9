"""
phase-gate: structured run logging

File: src/phase_gate/observability/logging.py

Purpose
- One JSON-lines file per run under ``{log_dir}/{run_id}/``, fed through a bounded queue so
  validators and scanners never block on disk I/O.
- ``structlog.get_logger(__name__)`` loggers render into the same sink as stdlib loggers.

Functional requirements
- Correlation fields (run, project, phase, validator) live in a context variable and are
  snapshotted onto each record when it is enqueued.
- Secret-looking keys, inline ``token=...`` assignments, bearer tokens and generative prompt
  bodies never reach the sink.
- A full queue drops the record and counts it instead of blocking the caller.
"""

from __future__ import annotations

import atexit
import contextvars
import json
import logging
import logging.handlers
import math
import queue
import re
import threading
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Final

import structlog

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]
LogRedactor = Callable[[JSONValue], JSONValue]

REDACTED: Final[str] = "***REDACTED***"
DEFAULT_LOG_FILENAME: Final[str] = "phase_gate.jsonl"
DEFAULT_LOGGER_NAME: Final[str] = "phase_gate"
CORRELATION_FIELDS: Final[tuple[str, ...]] = ("run_id", "project_id", "phase", "validator")

# Key fragments whose values are masked wholesale; prompt/completion carry artifact text.
_MASKED_KEY_FRAGMENTS: Final[tuple[str, ...]] = (
    "secret",
    "token",
    "password",
    "api_key",
    "apikey",
    "authorization",
    "credential",
    "private_key",
    "prompt",
    "completion",
)
_INLINE_SECRET: Final[re.Pattern[str]] = re.compile(
    r"(?i)\b(api[_-]?key|token|password|secret|authorization)\b\s*([:=])\s*([^\s,;]+)"
)
_BEARER: Final[re.Pattern[str]] = re.compile(r"(?i)\bbearer\s+[A-Za-z0-9._~+/-]+=*")

# Everything a bare LogRecord carries is plumbing; anything else arrived via ``extra``.
_RECORD_PLUMBING: Final[frozenset[str]] = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime", "taskName", "correlation"}

_CORRELATION: contextvars.ContextVar[dict[str, str] | None] = contextvars.ContextVar(
    "phase_gate_correlation", default=None
)

_active_lock = threading.Lock()
_active: StructuredLoggingHandle | None = None
_atexit_hooked = False


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    run_id: str
    base_log_dir: Path | str = Path("logs")
    logger_name: str = DEFAULT_LOGGER_NAME
    level: int | str = "INFO"
    log_format: str = "json"
    queue_size: int = 4096
    log_filename: str = DEFAULT_LOG_FILENAME
    log_to_stdout: bool = False
    redactor: LogRedactor | None = None


# ---------------------------------------------------------------------------
# Correlation context
# ---------------------------------------------------------------------------


def get_correlation_context() -> dict[str, str]:
    return dict(_CORRELATION.get() or {})


@contextmanager
def correlation_scope(**fields: str | None) -> Iterator[None]:
    """Bind correlation fields for records logged inside the block; ``None`` unbinds."""

    bound = get_correlation_context()
    for key, value in fields.items():
        if value is None:
            bound.pop(key, None)
        else:
            bound[key] = value
    token = _CORRELATION.set(bound)
    try:
        yield
    finally:
        _CORRELATION.reset(token)


# ---------------------------------------------------------------------------
# Redaction and JSON shaping
# ---------------------------------------------------------------------------


def _is_masked_key(key: str) -> bool:
    lowered = key.lower()
    return any(fragment in lowered for fragment in _MASKED_KEY_FRAGMENTS)


def _scrub_text(text: str) -> str:
    text = _INLINE_SECRET.sub(lambda m: f"{m.group(1)}{m.group(2)}{REDACTED}", text)
    return _BEARER.sub(f"Bearer {REDACTED}", text)


def default_log_redactor(value: JSONValue) -> JSONValue:
    """Mask sensitive keys at any depth and scrub secrets embedded in strings."""

    if isinstance(value, str):
        return _scrub_text(value)
    if isinstance(value, list):
        return [default_log_redactor(item) for item in value]
    if isinstance(value, dict):
        return {
            key: REDACTED if _is_masked_key(key) else default_log_redactor(item)
            for key, item in value.items()
        }
    return value


def _no_redaction(value: JSONValue) -> JSONValue:
    return value


def _jsonable(value: object) -> JSONValue:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else str(value)
    if isinstance(value, datetime):
        aware = value if value.tzinfo is not None else value.replace(tzinfo=UTC)
        return aware.astimezone(UTC).isoformat().replace("+00:00", "Z")
    if isinstance(value, Path):
        return value.as_posix()
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, Mapping):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if isinstance(value, (set, frozenset)):
        return sorted((_jsonable(item) for item in value), key=repr)
    return repr(value)


def _as_text(value: JSONValue) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, sort_keys=True, ensure_ascii=False)


def _utc_stamp(created: float) -> str:
    moment = datetime.fromtimestamp(created, tz=UTC)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _record_extras(record: logging.LogRecord) -> dict[str, JSONValue]:
    return {
        key: _jsonable(value)
        for key, value in vars(record).items()
        if key not in _RECORD_PLUMBING
        and key not in CORRELATION_FIELDS
        and not key.startswith("_")
    }


def _record_correlation(record: logging.LogRecord, run_id: str) -> dict[str, str]:
    merged = {"run_id": run_id}
    snapshot = getattr(record, "correlation", None)
    if isinstance(snapshot, Mapping):
        merged.update({str(k): str(v) for k, v in snapshot.items() if v})
    for key in CORRELATION_FIELDS:
        explicit = getattr(record, key, None)
        if isinstance(explicit, str) and explicit:
            merged[key] = explicit
    return merged


class _JsonLinesFormatter(logging.Formatter):
    def __init__(self, *, run_id: str, redactor: LogRedactor) -> None:
        super().__init__()
        self._run_id = run_id
        self._redact = redactor

    def format(self, record: logging.LogRecord) -> str:
        line: dict[str, JSONValue] = {
            "timestamp": _utc_stamp(record.created),
            "level": record.levelname,
            "logger": record.name,
            "event": _as_text(self._redact(record.getMessage())),
        }
        line.update(_record_correlation(record, self._run_id))
        extras = _record_extras(record)
        if extras:
            line["fields"] = self._redact(extras)
        return json.dumps(line, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


class _TextFormatter(logging.Formatter):
    def __init__(self, *, redactor: LogRedactor) -> None:
        super().__init__()
        self._redact = redactor

    def format(self, record: logging.LogRecord) -> str:
        event = _as_text(self._redact(record.getMessage()))
        extras = self._redact(_record_extras(record))
        pairs = ""
        if isinstance(extras, dict):
            pairs = " ".join(f"{key}={_as_text(extras[key])}" for key in sorted(extras))
        head = f"{_utc_stamp(record.created)} {record.levelname:<7} {record.name}: {event}"
        return f"{head} {pairs}".rstrip()


# ---------------------------------------------------------------------------
# Queue plumbing
# ---------------------------------------------------------------------------


class _DroppingQueueHandler(logging.handlers.QueueHandler):
    """Snapshots correlation context and never blocks on a full queue."""

    def __init__(self, log_queue: queue.Queue[logging.LogRecord]) -> None:
        super().__init__(log_queue)
        self._dropped = 0
        self._dropped_lock = threading.Lock()

    @property
    def dropped(self) -> int:
        with self._dropped_lock:
            return self._dropped

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        prepared: logging.LogRecord = super().prepare(record)
        prepared.correlation = get_correlation_context()
        return prepared

    def enqueue(self, record: logging.LogRecord) -> None:
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            with self._dropped_lock:
                self._dropped += 1


class StructuredLoggingHandle:
    """A live run sink; :meth:`close` drains the queue and closes every handler."""

    def __init__(
        self,
        *,
        logger: logging.Logger,
        run_id: str,
        log_path: Path,
        queue_handler: _DroppingQueueHandler,
        listener: logging.handlers.QueueListener,
        sinks: tuple[logging.Handler, ...],
    ) -> None:
        self.logger = logger
        self.run_id = run_id
        self.log_path = log_path
        self._queue_handler = queue_handler
        self._listener = listener
        self._sinks = sinks
        self._close_lock = threading.Lock()
        self._closed = False

    @property
    def dropped_records(self) -> int:
        return self._queue_handler.dropped

    @property
    def is_closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        with self._close_lock:
            if self._closed:
                return
            self._listener.stop()
            self.logger.removeHandler(self._queue_handler)
            self._queue_handler.close()
            for sink in self._sinks:
                sink.flush()
                sink.close()
            self._closed = True


def _route_structlog() -> None:
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.format_exc_info,
            structlog.stdlib.render_to_log_kwargs,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


def _required_text(value: object, name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{name} must be a non-empty string")
    return value.strip()


def _coerce_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    try:
        return logging.getLevelNamesMapping()[level.strip().upper()]
    except KeyError:
        raise ValueError(f"unsupported logging level {level!r}") from None


# ---------------------------------------------------------------------------
# Public setup / teardown
# ---------------------------------------------------------------------------


def setup_structured_logging(config: LoggingConfig) -> StructuredLoggingHandle:
    """Install the run sink on ``config.logger_name``, replacing any active run."""

    global _active, _atexit_hooked

    run_id = _required_text(config.run_id, "run_id")
    filename = _required_text(config.log_filename, "log_filename")
    if Path(filename).name != filename:
        raise ValueError("log_filename must not include path separators")
    logger_name = _required_text(config.logger_name, "logger_name")
    if config.queue_size <= 0:
        raise ValueError("queue_size must be > 0")
    level = _coerce_level(config.level)

    shutdown_logging()

    log_path = Path(config.base_log_dir) / run_id / filename
    log_path.parent.mkdir(parents=True, exist_ok=True)

    redactor = config.redactor or default_log_redactor
    formatter: logging.Formatter = (
        _TextFormatter(redactor=redactor)
        if config.log_format == "text"
        else _JsonLinesFormatter(run_id=run_id, redactor=redactor)
    )
    sinks: list[logging.Handler] = [logging.FileHandler(log_path, encoding="utf-8")]
    if config.log_to_stdout:
        sinks.append(logging.StreamHandler())
    for sink in sinks:
        sink.setLevel(level)
        sink.setFormatter(formatter)

    logger = logging.getLogger(logger_name)
    for stale in list(logger.handlers):
        logger.removeHandler(stale)
        stale.close()
    logger.setLevel(level)
    logger.propagate = False

    log_queue: queue.Queue[logging.LogRecord] = queue.Queue(maxsize=config.queue_size)
    queue_handler = _DroppingQueueHandler(log_queue)
    queue_handler.setLevel(level)
    listener = logging.handlers.QueueListener(log_queue, *sinks, respect_handler_level=True)
    listener.start()
    logger.addHandler(queue_handler)
    _route_structlog()

    handle = StructuredLoggingHandle(
        logger=logger,
        run_id=run_id,
        log_path=log_path,
        queue_handler=queue_handler,
        listener=listener,
        sinks=tuple(sinks),
    )
    with _active_lock:
        _active = handle
        if not _atexit_hooked:
            atexit.register(shutdown_logging)
            _atexit_hooked = True
    return handle


def setup_logging(
    observability_config: Mapping[str, object] | None = None,
    *,
    run_id: str,
    log_dir: Path | str | None = None,
) -> logging.Logger:
    """Install the run sink from an ``[observability]`` config section."""

    section = dict(observability_config or {})
    level = section.get("log_level", "INFO")
    log_format = section.get("log_format", "json")
    handle = setup_structured_logging(
        LoggingConfig(
            run_id=run_id,
            base_log_dir=log_dir if log_dir is not None else "logs",
            level=level if isinstance(level, (int, str)) else "INFO",
            log_format=log_format if isinstance(log_format, str) else "json",
            redactor=None if section.get("redact_secrets", True) else _no_redaction,
        )
    )
    return handle.logger


def get_active_logging_handle() -> StructuredLoggingHandle | None:
    with _active_lock:
        return _active


def shutdown_logging(handle: StructuredLoggingHandle | None = None) -> None:
    """Close ``handle`` (default: the active run sink); a no-op when nothing is active."""

    global _active

    target = handle if handle is not None else get_active_logging_handle()
    if target is None:
        return
    target.close()
    with _active_lock:
        if _active is target:
            _active = None


__all__ = [
    "CORRELATION_FIELDS",
    "JSONValue",
    "LogRedactor",
    "LoggingConfig",
    "REDACTED",
    "StructuredLoggingHandle",
    "correlation_scope",
    "default_log_redactor",
    "get_active_logging_handle",
    "get_correlation_context",
    "setup_logging",
    "setup_structured_logging",
    "shutdown_logging",
]
