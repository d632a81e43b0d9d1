import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from typing import Optional
import json
from pathlib import Path

from config.settings import get_settings

settings = get_settings()

# Extra attributes copied into structured records when present
_EXTRA_FIELDS = (
    "request_id",
    "user_id",
    "execution_time",
    "error_code",
    "status_code",
    "path",
    "method",
    "activation_code_id",
    "whitelist_id",
    "event_type",
)


class JsonFormatter(logging.Formatter):
    """JSON formatter for structured logging"""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for field in _EXTRA_FIELDS:
            if hasattr(record, field):
                log_entry[field] = getattr(record, field)

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_entry, ensure_ascii=False, default=str)


class ColoredFormatter(logging.Formatter):
    """Colored formatter for console output"""

    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
        'RESET': '\033[0m'       # Reset
    }

    def format(self, record: logging.LogRecord) -> str:
        if not settings.DEBUG:
            return super().format(record)

        color = self.COLORS.get(record.levelname, self.COLORS['RESET'])
        reset = self.COLORS['RESET']

        timestamp = datetime.now().strftime('%Y-%m-%d %H:%M:%S')

        formatted_message = (
            f"{color}[{timestamp}] {record.levelname:8s}{reset} "
            f"{record.name:20s} | {record.getMessage()}"
        )
        if record.exc_info:
            formatted_message += "\n" + self.formatException(record.exc_info)

        return formatted_message


def _rotating_handler(path: Path, level: int) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        filename=path,
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=5,
        encoding='utf-8'
    )
    handler.setLevel(level)
    handler.setFormatter(JsonFormatter())
    return handler


def setup_logging() -> None:
    """Setup logging configuration"""

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)

    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)
    console_handler.setFormatter(ColoredFormatter() if settings.DEBUG else JsonFormatter())
    root_logger.addHandler(console_handler)

    if settings.LOG_TO_FILE:
        log_dir = Path(settings.LOG_DIR)
        log_dir.mkdir(parents=True, exist_ok=True)

        root_logger.addHandler(_rotating_handler(log_dir / "app.log", logging.INFO))
        root_logger.addHandler(_rotating_handler(log_dir / "error.log", logging.ERROR))

        access_logger = logging.getLogger("access")
        access_logger.addHandler(_rotating_handler(log_dir / "access.log", logging.INFO))
        access_logger.setLevel(logging.INFO)
        # Avoid duplicate access lines on the root handlers
        access_logger.propagate = False

    # Third-party library loggers
    logging.getLogger("uvicorn").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("passlib").setLevel(logging.ERROR)

    if not settings.DEBUG:
        logging.getLogger("asyncio").setLevel(logging.WARNING)
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get logger instance by name"""

    if not logging.getLogger().handlers:
        setup_logging()

    return logging.getLogger(name)


class RequestLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter adding request context"""

    def __init__(self, logger: logging.Logger, request_id: str, user_id: Optional[str] = None):
        super().__init__(logger, {})
        self.request_id = request_id
        self.user_id = user_id

    def process(self, msg, kwargs):
        kwargs['extra'] = kwargs.get('extra', {})
        kwargs['extra']['request_id'] = self.request_id
        if self.user_id:
            kwargs['extra']['user_id'] = self.user_id
        return msg, kwargs


def get_request_logger(
    name: str,
    request_id: str,
    user_id: Optional[str] = None
) -> RequestLoggerAdapter:
    """Get logger with request context"""
    logger = get_logger(name)
    return RequestLoggerAdapter(logger, request_id, user_id)
