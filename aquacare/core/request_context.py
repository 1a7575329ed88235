"""Request-scoped context for log correlation."""

from contextvars import ContextVar
from typing import Optional

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
account_id_var: ContextVar[Optional[int]] = ContextVar("account_id", default=None)


def set_request_id(request_id: str | None) -> None:
    """Set the current request id."""
    request_id_var.set(request_id)


def get_request_id() -> str | None:
    """Get the current request id."""
    return request_id_var.get()


def set_account_context(account_id: int | None) -> None:
    """Set the web account the current request acts for.

    Args:
        account_id: Web account ID, or None for admin/worker calls
    """
    account_id_var.set(account_id)


def get_account_context() -> int | None:
    """Get the web account the current request acts for."""
    return account_id_var.get()


def clear_request_context() -> None:
    """Clear request id and account context."""
    request_id_var.set(None)
    account_id_var.set(None)
