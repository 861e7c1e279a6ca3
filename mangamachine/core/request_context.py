import contextvars
from contextlib import contextmanager

request_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar("request_id", default=None)
panel_number_var: contextvars.ContextVar[str | None] = contextvars.ContextVar("panel_number", default=None)
provider_var: contextvars.ContextVar[str | None] = contextvars.ContextVar("provider", default=None)


def set_request_id(request_id: str) -> contextvars.Token:
    """Store the current request ID in a context variable."""
    return request_id_var.set(request_id)


def reset_request_id(token: contextvars.Token) -> None:
    """Reset the request ID context variable to a previous state."""
    request_id_var.reset(token)


def get_request_id() -> str | None:
    """Retrieve the current request ID from the context."""
    return request_id_var.get()


def get_panel_number() -> str | None:
    return panel_number_var.get()


def get_provider() -> str | None:
    return provider_var.get()


@contextmanager
def log_context(
    panel_number: int | str | None = None,
    provider: str | None = None,
):
    """Temporarily scope panel/provider context for structured logs.

    Each asyncio task runs in a copy of the context, so concurrent panels in
    one sub-batch never see each other's values.
    """
    tokens: list[tuple[contextvars.ContextVar[str | None], contextvars.Token]] = []
    if panel_number is not None:
        tokens.append((panel_number_var, panel_number_var.set(str(panel_number))))
    if provider is not None:
        tokens.append((provider_var, provider_var.set(str(provider))))
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)
