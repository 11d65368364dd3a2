"""Request correlation ids.

The id for the unit of work in progress (an API request, a worker pass)
is held in a ContextVar, so it survives await points and stays separate
per asyncio task. Services bind it onto their loggers, the structlog
processor below stamps it onto every line, and the coordinator copies it
into each outbox record as ``trace_id``.

Entry points open a scope::

    with correlation_scope(request.headers.get("x-request-id")):
        await coordinator.sign_document(...)
"""

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

from uuid6 import uuid7

_correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")


def generate_correlation_id() -> str:
    """Return a fresh time-ordered (UUIDv7) id."""
    return str(uuid7())


def get_correlation_id() -> str:
    """Return the id of the current context, or ``""`` outside any scope."""
    return _correlation_id.get()


def set_correlation_id(correlation_id: str) -> None:
    _correlation_id.set(correlation_id)


@contextmanager
def correlation_scope(correlation_id: str | None = None) -> Iterator[str]:
    """Run a block under ``correlation_id``, generating one when absent.

    The previous id is restored on exit, including on error.

    Yields:
        The id in effect inside the block.
    """
    value = correlation_id or generate_correlation_id()
    token = _correlation_id.set(value)
    try:
        yield value
    finally:
        _correlation_id.reset(token)


def correlation_id_processor(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """structlog processor adding ``correlation_id`` when one is set.

    A value already bound on the logger is overwritten with the context's.
    """
    correlation_id = get_correlation_id()
    if correlation_id:
        event_dict["correlation_id"] = correlation_id
    return event_dict
