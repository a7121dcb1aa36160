"""Structured logging for convergence runs.

Console output is short and coloured; the JSONL file gets every poll tick
together with the resource the engine was waiting on.
"""

import logging
import json
import sys
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Union

DEFAULT_LOG_DIR = Path('.tgw-converge') / 'logs'

# Record attributes copied into JSON output when present
CONTEXT_FIELDS = ('resource_id', 'resource_type', 'operation', 'state', 'duration')

# Libraries that log every HTTP request at DEBUG
QUIET_LOGGERS = ('boto3', 'botocore', 'urllib3', 's3transfer')

# Fields of the innermost LogContext on this thread or task
_context_fields: ContextVar[Dict[str, Any]] = ContextVar('log_context', default={})


def _context_of(record: logging.LogRecord) -> Dict[str, Any]:
    return {name: getattr(record, name) for name in CONTEXT_FIELDS if hasattr(record, name)}


class JSONFormatter(logging.Formatter):
    """One JSON object per line, stamped with the record's own creation time."""

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, timezone.utc)
        entry: Dict[str, Any] = {
            'time': created.isoformat(timespec='milliseconds').replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }
        entry.update(_context_of(record))

        if record.exc_info:
            entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """Human-readable formatter for console output.

    Lines look like ``12:00:05 INFO     [tgw-0123] (available, 35.0s) converged``;
    the bracketed parts only appear inside a LogContext or when the engine
    passes state/duration.
    """

    LEVEL_COLORS = {
        logging.DEBUG: '\033[36m',
        logging.INFO: '\033[32m',
        logging.WARNING: '\033[33m',
        logging.ERROR: '\033[31m',
        logging.CRITICAL: '\033[35m',
    }
    RESET = '\033[0m'

    def __init__(self, use_color: bool = True):
        super().__init__()
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime('%H:%M:%S')

        level = f"{record.levelname:8}"
        if self.use_color and record.levelno in self.LEVEL_COLORS:
            level = f"{self.LEVEL_COLORS[record.levelno]}{level}{self.RESET}"

        parts = [timestamp, level]
        if hasattr(record, 'resource_id'):
            parts.append(f"[{record.resource_id}]")

        progress = []
        if hasattr(record, 'state'):
            progress.append(str(record.state) or '-')
        if hasattr(record, 'duration'):
            progress.append(f"{record.duration:.1f}s")
        if progress:
            parts.append(f"({', '.join(progress)})")

        parts.append(record.getMessage())
        line = ' '.join(parts)

        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def setup_logging(log_level: str = 'info', log_dir: Optional[Union[str, Path]] = None) -> Path:
    """Install console and JSONL file handlers on the root logger.

    Args:
        log_level: Console level (debug, info, warning, error)
        log_dir: Directory for the daily JSONL file (DEFAULT_LOG_DIR when None)

    Returns:
        Path of the log file being written
    """
    console_level = getattr(logging, log_level.upper())

    directory = Path(log_dir) if log_dir else DEFAULT_LOG_DIR
    directory.mkdir(parents=True, exist_ok=True)
    log_file = directory / f"tgw-converge-{datetime.now(timezone.utc):%Y%m%d}.jsonl"

    root = logging.getLogger()
    # The file handler records every tick regardless of the console level
    root.setLevel(logging.DEBUG)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(console_level)
    console.setFormatter(ConsoleFormatter(use_color=sys.stdout.isatty()))
    console.addFilter(ContextFilter())
    root.addHandler(console)

    file_handler = logging.FileHandler(log_file, encoding='utf-8')
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(JSONFormatter())
    file_handler.addFilter(ContextFilter())
    root.addHandler(file_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return log_file


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class ContextFilter(logging.Filter):
    """Copy the active LogContext fields onto each record.

    Names the record already carries (from ``extra=``) are left as they are.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        for name, value in _context_fields.get().items():
            if not hasattr(record, name):
                setattr(record, name, value)
        return True


class LogContext:
    """Attach resource fields to every record logged inside the block.

    Fields live in a context variable, so runs on other threads or tasks
    never see them. Contexts nest: an inner context adds to (and may
    override) the fields of the one around it. Fields set to None are left
    out. Handlers pick the fields up through ContextFilter, which
    setup_logging installs.

    Example:
        with LogContext(resource_id='tgw-0123', operation='create'):
            logger.info("waiting")
    """

    def __init__(self, **fields: Any):
        self.fields = {key: value for key, value in fields.items() if value is not None}
        self._token: Optional[Token] = None

    def __enter__(self):
        self._token = _context_fields.set({**_context_fields.get(), **self.fields})
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._token is not None:
            _context_fields.reset(self._token)
            self._token = None
        return False
