"""Request correlation id shared by log records, audit entries and responses."""
from contextvars import ContextVar, Token
from typing import Optional

_correlation_id_var: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)


def set_correlation_id(correlation_id: Optional[str]) -> Token:
    return _correlation_id_var.set(correlation_id)


def reset_correlation_id(token: Token) -> None:
    _correlation_id_var.reset(token)


def get_correlation_id() -> Optional[str]:
    return _correlation_id_var.get()


class CorrelationIdFilter:
    def filter(self, record):
        record.correlation_id = get_correlation_id() or '-'
        return True
