"""
Logging setup for the CLI and the web dashboard.

Records are tagged with the running command and the selected currency. The
console prints text or JSON lines, the optional rotating file always gets
JSON lines, and errors are reported to Sentry when a DSN is configured.
"""

import json
import logging
import logging.handlers
import random
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import sentry_sdk
from sentry_sdk.integrations.logging import LoggingIntegration

logger = logging.getLogger(__name__)

TEXT_FORMAT = '%(asctime)s %(levelname)-8s %(name)s: %(message)s'

# Attributes every LogRecord has; anything else arrived through ``extra``
_STANDARD_ATTRS = set(vars(logging.makeLogRecord({}))) | {'message', 'asctime', 'taskName'}

# Set by ContextFilter, reported as top-level JSON fields
_CONTEXT_ATTRS = ('command', 'currency')

NOISY_LOGGERS = ('aiohttp', 'asyncio', 'kaleido', 'uvicorn.access')


def _level(value: Any, default: str = 'INFO') -> int:
    name = str(value or default).upper()
    level = logging.getLevelName(name)
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {value}")
    return level


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def __init__(self, include_extra: bool = True):
        super().__init__()
        self.include_extra = include_extra

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }

        for attr in _CONTEXT_ATTRS:
            if hasattr(record, attr):
                entry[attr] = getattr(record, attr)

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc_value, _ = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc_value),
                "traceback": self.formatException(record.exc_info),
            }

        if self.include_extra:
            extra = {
                key: value for key, value in vars(record).items()
                if key not in _STANDARD_ATTRS and key not in _CONTEXT_ATTRS
            }
            if extra:
                entry["extra"] = extra

        return json.dumps(entry, default=str)


class SamplingFilter(logging.Filter):
    """Keeps a random fraction of DEBUG records; other levels always pass."""

    def __init__(self, rate: float = 0.01, rng: Optional[random.Random] = None):
        super().__init__()
        self.rate = rate
        self.rng = rng or random.Random()

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno > logging.DEBUG or self.rng.random() < self.rate


class ContextFilter(logging.Filter):
    """Tags records with the running CLI command and the selected currency."""

    def filter(self, record: logging.LogRecord) -> bool:
        from .context import get_current_context

        app_ctx = get_current_context()
        if app_ctx.command_stack:
            record.command = app_ctx.command_path
        record.currency = app_ctx.currency.currency.value
        return True


class LoggingManager:
    """
    Installs root handlers from the ``logging`` settings section::

        logging:
          level: INFO
          structured: false
          sampling_rate: 1.0
          handlers:
            console: {enabled: true, level: INFO}
            file: {enabled: false, filename: logs/pi_dashboard.log}
            sentry: {enabled: false, dsn: ...}

    Calling ``setup_logging`` again replaces the handlers it installed before.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}
        self.handlers: List[logging.Handler] = []
        self.sentry_initialized = False

    @property
    def settings(self) -> Dict[str, Any]:
        return self.config.get('logging') or {}

    def _handler_settings(self, name: str) -> Dict[str, Any]:
        return (self.settings.get('handlers') or {}).get(name) or {}

    def setup_logging(self, console_handler: Optional[logging.Handler] = None) -> None:
        """Replace the root handlers.

        Args:
            console_handler: Used instead of the stdout handler, e.g. the
                rich handler of the CLI
        """
        root = logging.getLogger()
        for handler in self.handlers:
            root.removeHandler(handler)

        level = _level(self.settings.get('level'))
        candidates = [console_handler or self._console_handler(), self._file_handler()]
        self.handlers = [handler for handler in candidates if handler is not None]

        context_filter = ContextFilter()
        rate = float(self.settings.get('sampling_rate', 1.0))
        sampler = SamplingFilter(rate) if rate < 1.0 else None

        for handler in self.handlers:
            handler.addFilter(context_filter)
            if sampler and handler.level <= logging.DEBUG:
                handler.addFilter(sampler)
            root.addHandler(handler)

        root.setLevel(level)
        logging.getLogger('pi_dashboard').setLevel(level)
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

        self._init_sentry()

    def _console_handler(self) -> Optional[logging.Handler]:
        settings = self._handler_settings('console')
        if not settings.get('enabled', True):
            return None

        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(_level(settings.get('level')))
        if self.settings.get('structured', False):
            handler.setFormatter(StructuredFormatter())
        else:
            handler.setFormatter(logging.Formatter(self.settings.get('format', TEXT_FORMAT)))
        return handler

    def _file_handler(self) -> Optional[logging.Handler]:
        settings = self._handler_settings('file')
        if not settings.get('enabled', False):
            return None

        path = Path(settings.get('filename', 'logs/pi_dashboard.log'))
        path.parent.mkdir(parents=True, exist_ok=True)

        handler = logging.handlers.RotatingFileHandler(
            path,
            maxBytes=settings.get('max_bytes', 10 * 1024 * 1024),
            backupCount=settings.get('backup_count', 5)
        )
        handler.setLevel(_level(settings.get('level'), 'DEBUG'))
        handler.setFormatter(StructuredFormatter())
        return handler

    def _init_sentry(self) -> None:
        settings = self._handler_settings('sentry')
        if self.sentry_initialized or not settings.get('enabled', False):
            return

        dsn = settings.get('dsn')
        if not dsn:
            logger.warning("Sentry enabled but no DSN configured")
            return

        sentry_sdk.init(
            dsn=dsn,
            environment=settings.get('environment', 'development'),
            integrations=[LoggingIntegration(level=_level(settings.get('level')),
                                             event_level=logging.ERROR)],
            traces_sample_rate=settings.get('traces_sample_rate', 0.0),
            send_default_pii=False,
        )
        self.sentry_initialized = True
        logger.info("Sentry error reporting enabled")

    def capture_exception(self, exception: BaseException, extra: Optional[Dict[str, Any]] = None) -> None:
        """Report an exception to Sentry, if configured."""
        if not self.sentry_initialized:
            return

        with sentry_sdk.new_scope() as scope:
            for key, value in (extra or {}).items():
                scope.set_extra(key, value)
            sentry_sdk.capture_exception(exception)


_manager = LoggingManager()


def setup_logging(config: Optional[Dict[str, Any]] = None,
                  console_handler: Optional[logging.Handler] = None) -> LoggingManager:
    """Configure process logging from a settings mapping."""
    if config is not None:
        _manager.config = config
    _manager.setup_logging(console_handler=console_handler)
    return _manager


def capture_exception(exception: BaseException, extra: Optional[Dict[str, Any]] = None) -> None:
    _manager.capture_exception(exception, extra)
