"""
Central logging setup.

- JSON log lines on stdout
- optional size-rotated log file
- noisy third-party loggers held at WARNING
"""
import logging
import logging.handlers
import os
import json
from trailverse.core.utils import utc_now
from typing import Optional

from trailverse.core.config import settings

_RESERVED_ATTRS = {
    'args', 'asctime', 'created', 'exc_info', 'exc_text', 'filename', 'funcName',
    'levelname', 'levelno', 'lineno', 'module', 'msecs', 'message', 'msg', 'name',
    'pathname', 'process', 'processName', 'relativeCreated', 'stack_info', 'thread',
    'threadName', 'taskName',
}

class JsonFormatter(logging.Formatter):
    """Render a LogRecord as one JSON object per line"""
    def format(self, record: logging.LogRecord) -> str:
        log_object = {
            "timestamp": utc_now().isoformat(),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_object['exc_info'] = self.formatException(record.exc_info)

        # `extra=` fields
        for key, value in record.__dict__.items():
            if key not in log_object and key not in _RESERVED_ATTRS:
                log_object[key] = value

        return json.dumps(log_object, ensure_ascii=False, default=str)

def setup_logging(
    log_level: str = settings.LOG_LEVEL,
    log_file: Optional[str] = settings.LOG_FILE,
    max_file_size: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5,
):
    """Configure the root logger for the whole process."""
    level = getattr(logging, log_level.upper(), logging.INFO)
    formatter = JsonFormatter()

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir and not os.path.exists(log_dir):
            os.makedirs(log_dir, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=max_file_size,
            backupCount=backup_count,
            encoding='utf-8'
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("alembic").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("anthropic").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)

    logging.info(f"Logging system initialized. Level: {log_level}, File: {log_file or 'disabled'}")

def init_logging():
    setup_logging()
