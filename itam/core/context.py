from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

operation_ctx_var: ContextVar[str | None] = ContextVar("operation", default=None)
actor_ctx_var: ContextVar[int | None] = ContextVar("actor_id", default=None)


@contextmanager
def log_context(operation: str, actor_id: int | None = None) -> Iterator[None]:
    """Tag log records emitted inside the block with the operation and actor.

    Only the log formatter reads these values; business code always receives
    ``actor_id`` explicitly.
    """

    op_token = operation_ctx_var.set(operation)
    actor_token = actor_ctx_var.set(actor_id)
    try:
        yield
    finally:
        operation_ctx_var.reset(op_token)
        actor_ctx_var.reset(actor_token)
