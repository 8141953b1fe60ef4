"""Structured JSON logging configuration."""
import logging
import sys
from contextvars import ContextVar

from pythonjsonlogger import jsonlogger

from backoffice.core.config import settings

# Set per request by RequestIdMiddleware.
request_id_ctx: ContextVar[str] = ContextVar("request_id", default="-")

_FORMAT = "%(asctime)s %(name)s %(levelname)s [%(request_id)s] %(message)s"


class RequestIdFilter(logging.Filter):
    """Attach the current request id to every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_ctx.get()
        return True


def setup_logging() -> None:
    """Configure JSON structured logging for production, human-readable for dev."""
    if settings.is_production:
        handler = logging.StreamHandler(sys.stdout)
        formatter = jsonlogger.JsonFormatter(
            _FORMAT,
            rename_fields={"asctime": "timestamp", "levelname": "level"},
        )
        handler.setFormatter(formatter)
        handler.addFilter(RequestIdFilter())
        logging.root.handlers = [handler]
        logging.root.setLevel(logging.INFO)
    else:
        logging.basicConfig(level=logging.INFO, format=_FORMAT)
        for handler in logging.root.handlers:
            handler.addFilter(RequestIdFilter())
