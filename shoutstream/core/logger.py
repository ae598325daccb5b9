"""
Structured logging setup for shoutstream
"""

import logging
import json
from datetime import datetime
from typing import Optional

ROOT_LOGGER_NAME = 'shoutstream'

# LogRecord attributes that never end up in the JSON payload
_RESERVED_ATTRS = {
    'timestamp', 'level', 'message', 'args', 'exc_info', 'exc_text', 'msg',
    'created', 'msecs', 'relativeCreated', 'levelname', 'levelno', 'pathname',
    'filename', 'module', 'funcName', 'lineno', 'processName', 'process',
    'threadName', 'thread', 'stack_info', 'taskName', 'asctime',
}


class StructuredLogger:
    """Logger wrapper that accepts keyword context on every call"""

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)

    def _log(self, level: int, msg: str, **kwargs):
        """Internal logging method"""
        extra = {
            'timestamp': datetime.now().isoformat(),
            **kwargs
        }
        self.logger.log(level, msg, extra=extra)

    def debug(self, msg: str, **kwargs):
        self._log(logging.DEBUG, msg, **kwargs)

    def info(self, msg: str, **kwargs):
        self._log(logging.INFO, msg, **kwargs)

    def warning(self, msg: str, **kwargs):
        self._log(logging.WARNING, msg, **kwargs)

    def error(self, msg: str, **kwargs):
        self._log(logging.ERROR, msg, **kwargs)

    def critical(self, msg: str, **kwargs):
        self._log(logging.CRITICAL, msg, **kwargs)


class JsonFormatter(logging.Formatter):
    """Formatter that outputs JSON strings"""

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record as JSON"""
        log_obj = {
            'timestamp': getattr(record, 'timestamp', datetime.now().isoformat()),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }

        # Keyword context passed through StructuredLogger
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and key not in log_obj and key != 'name':
                log_obj[key] = value

        if record.exc_info:
            log_obj['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_obj, default=str)


class FriendlyFormatter(logging.Formatter):
    """Console formatter that appends keyword context as key=value pairs"""

    def __init__(self):
        super().__init__('%(asctime)s - %(levelname)s - %(message)s')

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = {
            key: value for key, value in record.__dict__.items()
            if key not in _RESERVED_ATTRS and key != 'name'
        }
        if context:
            line += ' (' + ', '.join(f"{key}={value}" for key, value in context.items()) + ')'
        return line


def configure_logging(log_file: Optional[str] = None, debug: bool = False,
                      console: bool = True) -> logging.Logger:
    """Install console and JSON file handlers on the package logger.

    Calling this again replaces the handlers, so the CLI and tests can
    reconfigure without duplicating output.
    """
    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(logging.DEBUG if debug else logging.INFO)

    for handler in list(root.handlers):
        handler.close()
    root.handlers = []

    if console:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(FriendlyFormatter())
        root.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(JsonFormatter())
        root.addHandler(file_handler)

    root.propagate = False
    return root


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger below the package logger"""
    if not name.startswith(ROOT_LOGGER_NAME):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return StructuredLogger(name)
