"""
ticket-evidence — run-scoped structured logging

File: src/ticket_evidence/observability/logging.py
Last updated: 2026-10-18

Purpose
- One JSON-lines log file per run (``<log_dir>/<run_id>/evidence.jsonl``) that both stdlib
  loggers and ``structlog.get_logger`` component loggers write into.

What should be included in this file
- ``setup_logging`` / ``setup_structured_logging`` / ``shutdown_logging``.
- ``correlation_scope`` binding ``run_id``, ``ticket_id``, ``evidence_run_id`` and
  ``correlation_id`` through ``structlog.contextvars``.
- A ``structlog.stdlib.ProcessorFormatter`` chain that stamps, correlates, redacts and renders
  each record.

Functional requirements
- Secret-bearing keys and token-shaped text never reach the sink when redaction is enabled.
- Correlation values are captured on the emitting thread, not on the writer thread.

Non-functional requirements
- Emitting never blocks: records go through a bounded queue and overflow is counted.
"""

from __future__ import annotations

import atexit
import logging
import logging.handlers
import math
import queue
import threading
from collections.abc import Callable, Iterator, Mapping, MutableMapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Final

import structlog

from ticket_evidence.security.redaction import REDACTED_VALUE, redact_structure

LogRedactor = Callable[[Any], Any]
EventDict = MutableMapping[str, Any]

LOG_FILENAME: Final[str] = "evidence.jsonl"
ROOT_LOGGER_NAME: Final[str] = "ticket_evidence"
DEFAULT_QUEUE_SIZE: Final[int] = 4096

CORRELATION_KEYS: Final[tuple[str, ...]] = (
    "run_id",
    "ticket_id",
    "evidence_run_id",
    "correlation_id",
)

# Attributes every LogRecord carries; anything else on a record came in through ``extra``.
_RECORD_ATTRIBUTES: Final[frozenset[str]] = frozenset(
    vars(logging.LogRecord("probe", logging.INFO, __file__, 0, "", None, None))
) | frozenset({"message", "asctime", "correlation", "taskName"})


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Where and how one run's log file is written."""

    run_id: str
    base_log_dir: Path | str = Path("logs")
    logger_name: str = ROOT_LOGGER_NAME
    level: int | str = "INFO"
    queue_size: int = DEFAULT_QUEUE_SIZE
    log_filename: str = LOG_FILENAME
    log_to_stdout: bool = False
    redactor: LogRedactor | None = None


class _DroppingQueueHandler(logging.handlers.QueueHandler):
    """Enqueue without waiting; a full queue drops the record and counts it."""

    def __init__(self, log_queue: queue.Queue[Any]) -> None:
        super().__init__(log_queue)
        self._lock = threading.Lock()
        self.dropped = 0

    def prepare(self, record: logging.LogRecord) -> Any:
        bound = structlog.contextvars.get_contextvars()
        if bound:
            record.correlation = dict(bound)
        return super().prepare(record)

    def enqueue(self, record: logging.LogRecord) -> None:
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            with self._lock:
                self.dropped += 1


@dataclass(slots=True, eq=False)
class StructuredLoggingHandle:
    """An active run log; ``shutdown`` drains the queue and closes the sinks exactly once."""

    logger: logging.Logger
    run_id: str
    log_path: Path
    queue_handler: _DroppingQueueHandler
    listener: logging.handlers.QueueListener
    sinks: tuple[logging.Handler, ...]
    _lock: threading.Lock = field(default_factory=threading.Lock)
    _closed: bool = False

    @property
    def dropped_records(self) -> int:
        return self.queue_handler.dropped

    @property
    def is_shutdown(self) -> bool:
        return self._closed

    def shutdown(self) -> None:
        with self._lock:
            if self._closed:
                return
            # QueueListener.stop() handles everything enqueued before it returns.
            self.listener.stop()
            self.logger.removeHandler(self.queue_handler)
            self.queue_handler.close()
            for sink in self.sinks:
                sink.flush()
                sink.close()
            self._closed = True


class _ActiveHandle:
    """Process-wide slot for the most recently installed handle."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handle: StructuredLoggingHandle | None = None
        self._atexit_registered = False

    def get(self) -> StructuredLoggingHandle | None:
        with self._lock:
            return self._handle

    def install(self, handle: StructuredLoggingHandle) -> None:
        with self._lock:
            self._handle = handle
            if not self._atexit_registered:
                atexit.register(shutdown_logging)
                self._atexit_registered = True

    def release(self, handle: StructuredLoggingHandle) -> None:
        with self._lock:
            if self._handle is handle:
                self._handle = None


_ACTIVE = _ActiveHandle()


def _stdlib_processors() -> list[Any]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.format_exc_info,
        structlog.stdlib.render_to_log_kwargs,
    ]


def configure_structlog() -> None:
    """Send ``structlog`` loggers through stdlib logging so they share the run log sinks."""

    structlog.configure(
        processors=_stdlib_processors(),
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


def get_logger(name: str) -> Any:
    """Component logger bound to the stdlib logger ``name``, whatever the global structlog setup.

    Events only reach a sink once ``setup_logging`` has attached one; until then stdlib logging
    drops them below WARNING instead of printing to stdout.
    """

    return structlog.wrap_logger(
        logging.getLogger(name),
        processors=_stdlib_processors(),
        wrapper_class=structlog.stdlib.BoundLogger,
    )


def setup_logging(
    observability_config: Mapping[str, object] | None = None,
    *,
    run_id: str,
    log_dir: Path | str | None = None,
) -> StructuredLoggingHandle:
    """Install run logging from an ``[observability]`` config section."""

    section = dict(observability_config or {})
    level = section.get("log_level", "INFO")
    directory = log_dir if log_dir is not None else section.get("log_dir", "logs")
    return setup_structured_logging(
        LoggingConfig(
            run_id=run_id,
            base_log_dir=directory if isinstance(directory, (str, Path)) else "logs",
            level=level if isinstance(level, (int, str)) else "INFO",
            log_to_stdout=bool(section.get("log_to_stdout", False)),
            redactor=None if section.get("redact_secrets", True) else _passthrough,
        )
    )


def setup_structured_logging(config: LoggingConfig) -> StructuredLoggingHandle:
    """Replace any active run log with a new queue-backed one for ``config.run_id``."""

    run_id = _non_empty(config.run_id, "run_id")
    logger_name = _non_empty(config.logger_name, "logger_name")
    filename = _non_empty(config.log_filename, "log_filename")
    if Path(filename).name != filename:
        raise ValueError("log_filename must be a bare file name")
    if isinstance(config.queue_size, bool) or not isinstance(config.queue_size, int):
        raise ValueError("queue_size must be an integer")
    if config.queue_size < 1:
        raise ValueError("queue_size must be at least 1")
    level = _level_number(config.level)

    shutdown_logging()

    log_path = Path(config.base_log_dir) / run_id / filename
    log_path.parent.mkdir(parents=True, exist_ok=True)

    formatter = _run_formatter(run_id, config.redactor or redact_structure)
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

    log_queue: queue.Queue[Any] = queue.Queue(maxsize=config.queue_size)
    queue_handler = _DroppingQueueHandler(log_queue)
    queue_handler.setLevel(level)
    listener = logging.handlers.QueueListener(log_queue, *sinks, respect_handler_level=True)
    listener.start()
    logger.addHandler(queue_handler)
    configure_structlog()

    handle = StructuredLoggingHandle(
        logger=logger,
        run_id=run_id,
        log_path=log_path,
        queue_handler=queue_handler,
        listener=listener,
        sinks=tuple(sinks),
    )
    _ACTIVE.install(handle)
    return handle


def shutdown_logging(handle: StructuredLoggingHandle | None = None) -> None:
    """Drain and close ``handle`` (default: the active one). Safe to call repeatedly."""

    target = handle if handle is not None else _ACTIVE.get()
    if target is None:
        return
    target.shutdown()
    _ACTIVE.release(target)


def get_correlation_context() -> dict[str, str]:
    return {
        key: value
        for key, value in structlog.contextvars.get_contextvars().items()
        if isinstance(value, str)
    }


@contextmanager
def correlation_scope(**fields: str | None) -> Iterator[None]:
    """Bind correlation fields for the block; a ``None`` value hides the outer binding."""

    binds: dict[str, str] = {}
    hidden: list[str] = []
    for key, value in fields.items():
        name = _non_empty(key, "correlation key")
        if value is None:
            hidden.append(name)
        else:
            binds[name] = _non_empty(value, "correlation value")

    outer = structlog.contextvars.get_contextvars()
    touched = [*binds, *hidden]
    structlog.contextvars.unbind_contextvars(*hidden)
    structlog.contextvars.bind_contextvars(**binds)
    try:
        yield
    finally:
        structlog.contextvars.unbind_contextvars(*touched)
        structlog.contextvars.bind_contextvars(
            **{key: outer[key] for key in touched if key in outer}
        )


def _run_formatter(run_id: str, redactor: LogRedactor) -> structlog.stdlib.ProcessorFormatter:
    def stamp(_: Any, __: str, event_dict: EventDict) -> EventDict:
        record: logging.LogRecord = event_dict["_record"]
        event_dict["timestamp"] = (
            datetime.fromtimestamp(record.created, tz=UTC)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z")
        )
        event_dict["level"] = record.levelname
        event_dict["logger"] = record.name
        event_dict.update(_correlation_of(record, run_id))
        extras = {
            key: _jsonable(value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRIBUTES
            and key not in CORRELATION_KEYS
            and not key.startswith("_")
        }
        if extras:
            event_dict["fields"] = extras
        return event_dict

    def redact(_: Any, __: str, event_dict: EventDict) -> EventDict:
        message = redactor(str(event_dict.get("event", "")))
        event_dict["event"] = message if isinstance(message, str) else str(message)
        if "fields" in event_dict:
            event_dict["fields"] = redactor(event_dict["fields"])
        return event_dict

    return structlog.stdlib.ProcessorFormatter(
        processors=[
            stamp,
            redact,
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.EventRenamer("message"),
            structlog.processors.JSONRenderer(
                sort_keys=True, separators=(",", ":"), ensure_ascii=False
            ),
        ]
    )


def _correlation_of(record: logging.LogRecord, run_id: str) -> dict[str, str]:
    merged = {"run_id": run_id}
    captured = getattr(record, "correlation", None)
    sources: list[Mapping[str, Any]] = [captured] if isinstance(captured, Mapping) else []
    sources.append({key: getattr(record, key, None) for key in CORRELATION_KEYS})
    for source in sources:
        for key, value in source.items():
            if isinstance(key, str) and isinstance(value, str) and value.strip():
                merged[key] = value.strip()
    return merged


def _jsonable(value: object) -> Any:
    if isinstance(value, float) and not math.isfinite(value):
        return REDACTED_VALUE
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, datetime):
        aware = value if value.tzinfo is not None else value.replace(tzinfo=UTC)
        return aware.astimezone(UTC).isoformat(timespec="microseconds").replace("+00:00", "Z")
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    if isinstance(value, Mapping):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_jsonable(item) for item in value]
    return str(value)


def _non_empty(value: object, label: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{label} must be a non-empty string")
    return value.strip()


def _level_number(value: int | str) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        number = logging.getLevelName(value.strip().upper())
        if isinstance(number, int):
            return number
    raise ValueError(f"unsupported logging level {value!r}")


def _passthrough(value: Any) -> Any:
    return value


__all__ = [
    "CORRELATION_KEYS",
    "LogRedactor",
    "LoggingConfig",
    "StructuredLoggingHandle",
    "configure_structlog",
    "correlation_scope",
    "get_correlation_context",
    "get_logger",
    "setup_logging",
    "setup_structured_logging",
    "shutdown_logging",
]
