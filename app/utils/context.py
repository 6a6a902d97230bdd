from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

request_id_context: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def get_request_id() -> Optional[str]:
    """Get the current request ID from context."""
    return request_id_context.get()


def set_request_id(request_id: str) -> None:
    """Set the request ID in context."""
    request_id_context.set(request_id)


@contextmanager
def request_id_scope(request_id: str) -> Iterator[str]:
    """Bind a request ID for the duration of a block, e.g. one Celery task run."""
    token = request_id_context.set(request_id)
    try:
        yield request_id
    finally:
        request_id_context.reset(token)
