from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar, Token
import logging
from typing import Iterator, Optional

_request_id_var: ContextVar[str] = ContextVar("request_id", default="")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s"


def set_request_id(request_id: Optional[str]) -> Token[str]:
    return _request_id_var.set(request_id or "")


def reset_request_id(token: Token[str]) -> None:
    _request_id_var.reset(token)


def get_request_id(default: Optional[str] = None) -> Optional[str]:
    value = _request_id_var.get()
    return value if value else default


def get_request_id_value(default: str = "no-request") -> str:
    value = _request_id_var.get()
    return value if value else default


@contextmanager
def request_scope(request_id: Optional[str]) -> Iterator[str]:
    """Bind request_id to every log record emitted inside the block."""
    token = set_request_id(request_id)
    try:
        yield get_request_id_value()
    finally:
        reset_request_id(token)


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = get_request_id_value()
        return True


def attach_request_id_filter(logger: Optional[logging.Logger] = None) -> None:
    target = logger or logging.getLogger()
    for handler in target.handlers:
        handler.addFilter(RequestIdFilter())


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging once for a host process embedding the engine."""
    from booking_engine.core.config import settings

    logging.basicConfig(level=level or settings.log_level, format=LOG_FORMAT)
    attach_request_id_filter()
