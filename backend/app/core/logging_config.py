"""
Structured logging for SailSmart: JSON records with request context and sensitive-data masking
"""
import json
import logging
import re
import sys
from contextvars import ContextVar
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional

from app.core.config import get_settings

# Request-scoped fields merged into every record (request_id, method, path, user_id...)
request_context: ContextVar[Dict[str, Any]] = ContextVar("request_context", default={})

_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# Attributes every LogRecord carries; anything else came in through extra=
_RECORD_ATTRS = frozenset({
    "name", "msg", "args", "created", "filename", "funcName", "levelname",
    "levelno", "lineno", "module", "msecs", "message", "pathname", "process",
    "processName", "relativeCreated", "thread", "threadName", "exc_info",
    "exc_text", "stack_info", "taskName",
})


class SensitiveDataFilter(logging.Filter):
    """Mask passwords, tokens, API keys and bearer credentials in log output"""

    SENSITIVE_PATTERNS = [
        (re.compile(r'password["\']?\s*[:=]\s*["\']?([^"\'\s&,]+)', re.IGNORECASE), 'password": "***"'),
        (re.compile(r'token["\']?\s*[:=]\s*["\']?([^"\'\s&,]+)', re.IGNORECASE), 'token": "***"'),
        (re.compile(r'api[_-]?key["\']?\s*[:=]\s*["\']?([^"\'\s&,]+)', re.IGNORECASE), 'api_key": "***"'),
        (re.compile(r'secret["\']?\s*[:=]\s*["\']?([^"\'\s&,]+)', re.IGNORECASE), 'secret": "***"'),
        (re.compile(r'Bearer\s+([^\s"]+)'), "Bearer ***"),
        (re.compile(r'Authorization:\s*([^\s"]+)', re.IGNORECASE), "Authorization: ***"),
    ]

    # extra= fields that carry credentials or crew contact details
    SECRET_FIELDS = ("password", "token", "api_key")
    CONTACT_FIELDS = ("to", "email", "phone")

    def __init__(self, enabled: bool = True):
        super().__init__()
        self.enabled = enabled

    def _mask(self, value: str) -> str:
        for pattern, replacement in self.SENSITIVE_PATTERNS:
            value = pattern.sub(replacement, value)
        return value

    @staticmethod
    def mask_contact(value: Any) -> str:
        """'sam@example.com' -> 's***@example.com', '+34 600 123 456' -> '***456'"""
        text = str(value)
        if "@" in text:
            local, _, domain = text.partition("@")
            return f"{local[:1]}***@{domain}"
        return f"***{text[-3:]}" if len(text) > 3 else "***"

    def filter(self, record: logging.LogRecord) -> bool:
        if not self.enabled:
            return True

        if isinstance(record.msg, str):
            record.msg = self._mask(record.msg)

        if record.args and isinstance(record.args, tuple):
            record.args = tuple(
                self._mask(arg) if isinstance(arg, str) else arg
                for arg in record.args
            )

        for field in self.SECRET_FIELDS:
            if getattr(record, field, None):
                setattr(record, field, "***")
        for field in self.CONTACT_FIELDS:
            value = getattr(record, field, None)
            if value:
                setattr(record, field, self.mask_contact(value))

        return True


class ContextualFormatter(logging.Formatter):
    """Render each record as a single JSON object"""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "message": record.getMessage(),
        }

        ctx = request_context.get({})
        if ctx:
            payload.update(ctx)

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRS:
                continue
            try:
                json.dumps(value)
                payload[key] = value
            except (TypeError, ValueError):
                payload[key] = str(value)

        return json.dumps(payload, ensure_ascii=False, default=str)


class LoggingConfig:
    """Centralized logging configuration"""

    _configured = False
    _log_metrics: Dict[str, int] = {level: 0 for level in _LEVELS}

    @classmethod
    def configure(cls, module_levels: Optional[Dict[str, str]] = None):
        """Install handlers and per-module levels (idempotent)"""
        if cls._configured:
            return

        settings = get_settings()

        levels = {
            "sqlalchemy.engine": "INFO" if settings.log_sqlalchemy else "WARNING",
            "sqlalchemy.pool": "WARNING",
            "uvicorn.access": "INFO" if settings.log_uvicorn_access else "WARNING",
            "uvicorn.error": "INFO",
            "httpx": "WARNING",
            "app": settings.log_level,
            "root": settings.log_level,
        }

        if settings.log_module_levels:
            try:
                levels.update(json.loads(settings.log_module_levels))
            except (json.JSONDecodeError, TypeError):
                sys.stderr.write("Ignoring malformed LOG_MODULE_LEVELS\n")

        if module_levels:
            levels.update(module_levels)

        if settings.log_format.lower() == "json":
            formatter: logging.Formatter = ContextualFormatter(datefmt="%Y-%m-%d %H:%M:%S")
        else:
            formatter = logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S"
            )

        mask = SensitiveDataFilter(enabled=not settings.log_sensitive_data)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        console_handler.addFilter(mask)
        handlers = [console_handler]

        if settings.log_file_enabled:
            log_path = Path(settings.log_file_path)
            if not log_path.is_absolute():
                log_path = Path(__file__).resolve().parents[3] / log_path
            log_path.parent.mkdir(parents=True, exist_ok=True)

            when = settings.log_file_rotation
            if when not in ("midnight", "W0", "W1", "W2", "W3", "W4", "W5", "W6"):
                when = "midnight"

            file_handler = TimedRotatingFileHandler(
                filename=str(log_path),
                when=when,
                backupCount=settings.log_file_retention,
                encoding="utf-8"
            )
            file_handler.setFormatter(formatter)
            file_handler.addFilter(mask)
            handlers.append(file_handler)

        logging.basicConfig(
            level=getattr(logging, levels.get("root", "INFO").upper()),
            handlers=handlers,
            force=True
        )

        for module, level in levels.items():
            if module == "root":
                continue
            logger = logging.getLogger(module)
            logger.setLevel(getattr(logging, level.upper()))

        metrics_handler = cls._MetricsHandler()
        metrics_handler.setLevel(logging.DEBUG)
        logging.getLogger().addHandler(metrics_handler)

        cls._configured = True

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        """Get a logger for a module"""
        if not cls._configured:
            cls.configure()
        return logging.getLogger(name)

    @classmethod
    def set_context(cls, **kwargs):
        """Bind fields to the current request's log context"""
        ctx = request_context.get({}).copy()
        ctx.update(kwargs)
        request_context.set(ctx)

    @classmethod
    def clear_context(cls):
        request_context.set({})

    @classmethod
    def get_metrics(cls) -> Dict[str, int]:
        """Record counts per level since start (or last reset)"""
        return cls._log_metrics.copy()

    @classmethod
    def reset_metrics(cls):
        cls._log_metrics = {level: 0 for level in _LEVELS}

    class _MetricsHandler(logging.Handler):
        """Count records by level"""

        def emit(self, record: logging.LogRecord):
            if record.levelname in LoggingConfig._log_metrics:
                LoggingConfig._log_metrics[record.levelname] += 1
