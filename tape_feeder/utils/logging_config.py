"""Logging setup for feeder entrypoints.

``setup_logging`` configures the root logger once per process for the
CLI or for a host application embedding the feeder:
    - Console handler (optionally colored) on stderr
    - Optional file handler, human or JSON lines, optionally size-rotated
    - Contextual fields (app, feeder) carried by every record

Fields are held in a contextvar.  ``TapeFeeder.feed`` wraps each feed in
``log_context(feeder=<id>)`` so records from concurrent feeders on
different threads stay attributable.

Format examples:
    Human: 2026-10-16T13:45:12.345Z | INFO     | app=run_feed feeder=tape1 | Feed complete
    JSON: {"t":"2026-10-16T13:45:12.345+00:00","lvl":"INFO","feeder":"tape1","msg":"..."}
"""

import contextlib
import contextvars
import json
import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional


_fields: contextvars.ContextVar = contextvars.ContextVar('feeder_log_fields', default={})

_installed: List[logging.Handler] = []

_LEVEL_COLORS = {
    'DEBUG': '\033[36m',
    'INFO': '\033[32m',
    'WARNING': '\033[33m',
    'ERROR': '\033[31m',
    'CRITICAL': '\033[35m',
}
_RESET = '\033[0m'


class ContextFormatter(logging.Formatter):
    """Render records with the current contextual fields.

    Parameters
    ----------
    fmt_mode : str
        ``"human"`` for pipe-separated lines, ``"json"`` for one JSON
        object per line.
    use_color : bool
        Color the level name; ignored unless stderr is a terminal.
    """

    def __init__(self, fmt_mode: str = "human", use_color: bool = True):
        super().__init__()
        if fmt_mode not in ("human", "json"):
            raise ValueError(f"Unknown log format: {fmt_mode}. Use 'human' or 'json'.")
        self.fmt_mode = fmt_mode
        self.use_color = use_color and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        fields = _fields.get({})
        ts = datetime.fromtimestamp(record.created, tz=timezone.utc)
        if self.fmt_mode == "json":
            return self._format_json(record, ts, fields)
        return self._format_human(record, ts, fields)

    def _format_json(self, record: logging.LogRecord, ts: datetime, fields: dict) -> str:
        out = {
            't': ts.isoformat(),
            'lvl': record.levelname,
            'name': record.name,
            'msg': record.getMessage(),
        }
        out.update(fields)
        if record.exc_info:
            out['exc'] = self.formatException(record.exc_info)
        return json.dumps(out, default=str)

    def _format_human(self, record: logging.LogRecord, ts: datetime, fields: dict) -> str:
        level = f"{record.levelname:8s}"
        if self.use_color:
            level = f"{_LEVEL_COLORS.get(record.levelname, '')}{level}{_RESET}"

        parts = [ts.strftime('%Y-%m-%dT%H:%M:%S.%f')[:-3] + 'Z', '|', level, '|']
        if fields:
            parts += [' '.join(f"{k}={v}" for k, v in fields.items()), '|']
        parts.append(record.getMessage())

        line = ' '.join(parts)
        if record.exc_info:
            line += '\n' + self.formatException(record.exc_info)
        return line


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    *,
    json: bool = False,
    color: bool = True,
    to_stderr: bool = True,
    max_bytes: Optional[int] = None,
    backup_count: int = 5,
    quiet_libs: Optional[List[str]] = None,
    context: Optional[Dict[str, Any]] = None
) -> List[logging.Handler]:
    """Configure the root logger.

    Calling again replaces the handlers installed by the previous call;
    handlers added by others are left alone.

    Parameters
    ----------
    log_level : str
        "DEBUG", "INFO", "WARNING", "ERROR" or "CRITICAL"
    log_file : str, optional
        Also write records to this file
    json : bool
        JSON lines in the log file instead of human-readable lines
    color : bool
        Color level names on the console
    to_stderr : bool
        Install the console handler
    max_bytes : int, optional
        Rotate the log file once it reaches this size
    backup_count : int
        Rotated files kept when ``max_bytes`` is set
    quiet_libs : list[str], optional
        Loggers raised to WARNING (e.g. ["PIL"], whose PNG decoder logs
        every chunk at DEBUG)
    context : dict, optional
        Initial contextual fields (e.g. {"app": "run_feed"})

    Returns
    -------
    list[logging.Handler]
        Handlers installed by this call
    """
    root = logging.getLogger()
    for old in _installed:
        root.removeHandler(old)
        old.close()
    _installed.clear()

    root.setLevel(getattr(logging, log_level.upper()))

    if to_stderr:
        console = logging.StreamHandler(sys.stderr)
        console.setFormatter(ContextFormatter("human", color))
        _installed.append(console)

    if log_file:
        _installed.append(_create_file_handler(log_file, json, max_bytes, backup_count))

    for handler in _installed:
        root.addHandler(handler)

    if context:
        push_context(**context)

    for lib in quiet_libs or []:
        logging.getLogger(lib).setLevel(logging.WARNING)

    logging.captureWarnings(True)
    return list(_installed)


def _create_file_handler(
    log_file: str,
    json_format: bool,
    max_bytes: Optional[int],
    backup_count: int
) -> logging.Handler:
    """Create a plain or size-rotated file handler."""
    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    handler: logging.Handler
    if max_bytes is not None:
        if max_bytes <= 0:
            raise ValueError(f"max_bytes must be positive, got {max_bytes}")
        handler = logging.handlers.RotatingFileHandler(
            log_path, maxBytes=max_bytes, backupCount=backup_count
        )
    else:
        handler = logging.FileHandler(log_path)

    handler.setFormatter(ContextFormatter("json" if json_format else "human", use_color=False))
    return handler


def push_context(**kwargs) -> None:
    """Add contextual fields to all subsequent records in this context.

    Examples
    --------
    >>> push_context(app="run_feed")
    >>> logger.info("Loaded")  # → "... | app=run_feed | Loaded"
    """
    _fields.set({**_fields.get({}), **kwargs})


def pop_context(keys: Optional[List[str]] = None) -> None:
    """Remove contextual fields; if keys is None, clears all of them."""
    if keys is None:
        _fields.set({})
        return
    _fields.set({k: v for k, v in _fields.get({}).items() if k not in keys})


def get_context() -> Dict[str, Any]:
    """Return a copy of the current contextual fields."""
    return dict(_fields.get({}))


@contextlib.contextmanager
def log_context(**kwargs) -> Iterator[None]:
    """Push fields for the duration of a ``with`` block, then restore."""
    token = _fields.set({**_fields.get({}), **kwargs})
    try:
        yield
    finally:
        _fields.reset(token)
