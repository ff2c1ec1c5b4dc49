"""Request-scoped logging context for the scheduling engine.

Every engine operation runs inside ``request_context``, which tags the
log records it produces with a correlation ID and the operation name, so
one booking can be followed through the availability check, the commit
under the resource lock and the reminders armed for it. Background work
gets its own scopes (``task-<name>-...`` for recurring runs,
``reminder-<id>`` for reminder dispatch).

Scopes are restored on exit, so a pooled thread never carries the
previous request's ID into the next one. Nested scopes without an
explicit ID share the outer scope's ID: a caller that opens a scope
around several engine calls sees them all under one correlation ID.

Usage:
    from scheduling_engine.logging_context import get_request_logger, request_context

    logger = get_request_logger(__name__)
    with request_context("book_resource"):
        logger.info("Booking committed")  # record.request_id == "req_1a2b3c4d"
"""

import logging
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

NO_REQUEST_ID = "NO_REQUEST_ID"

_request_id: ContextVar[str] = ContextVar("request_id", default=NO_REQUEST_ID)
_operation: ContextVar[str] = ContextVar("operation", default="-")
_in_scope: ContextVar[bool] = ContextVar("in_request_scope", default=False)


def new_request_id(prefix: str = "req") -> str:
    return f"{prefix}_{uuid.uuid4().hex[:8]}"


def get_request_id() -> str:
    return _request_id.get()


def get_operation() -> str:
    return _operation.get()


@contextmanager
def request_context(operation: str, request_id: Optional[str] = None) -> Iterator[str]:
    """
    Run a block under a correlation ID and operation name.

    A fresh ID is generated unless one is given or an enclosing scope
    already set one. Both values are reset when the block exits, even if
    it raises.

    Yields:
        The correlation ID in effect inside the block.
    """
    if request_id is None:
        request_id = _request_id.get() if _in_scope.get() else new_request_id()
    id_token = _request_id.set(request_id)
    op_token = _operation.set(operation)
    scope_token = _in_scope.set(True)
    try:
        yield request_id
    finally:
        _in_scope.reset(scope_token)
        _operation.reset(op_token)
        _request_id.reset(id_token)


class RequestIdFilter(logging.Filter):
    """Injects request_id and operation into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _request_id.get()  # type: ignore[attr-defined]
        record.operation = _operation.get()  # type: ignore[attr-defined]
        return True


def get_request_logger(name: str) -> logging.Logger:
    """Return a logger with the RequestIdFilter attached.

    The filter adds ``request_id`` and ``operation`` to each record so
    formatters can include ``%(request_id)s`` in their format string.
    """
    logger = logging.getLogger(name)
    if not any(isinstance(f, RequestIdFilter) for f in logger.filters):
        logger.addFilter(RequestIdFilter())
    return logger
