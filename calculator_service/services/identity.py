"""Caller identity for event attribution.

The authentication layer sets the user id for the current request
context; the workflow reads it best effort when attributing events.
"""

from contextvars import ContextVar

current_user_id_context: ContextVar[str | None] = ContextVar(
    "current_user_id", default=None
)


def get_current_user_id() -> str | None:
    """Get the authenticated user id of the current context, if any."""
    return current_user_id_context.get()


def set_current_user_id(user_id: str | None) -> None:
    """Set the authenticated user id for the current context."""
    current_user_id_context.set(user_id)
