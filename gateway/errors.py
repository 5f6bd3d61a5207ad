"""Domain errors raised across the dispatch pipeline."""

from __future__ import annotations


class GatewayError(RuntimeError):
    """Base class for every error the dispatcher knows how to handle."""


class StoreReadError(GatewayError):
    """Status or session backing store could not be read."""


class EmptyInputError(GatewayError):
    """The inbound update produced a turn with no content parts."""


class AttachmentFetchError(GatewayError):
    """An image attachment could not be resolved to a URL."""


class FormatRenderError(GatewayError):
    """The chat platform rejected formatted markup."""


class UpstreamError(GatewayError):
    """A single completion attempt failed."""

    def __init__(self, message: str, *, model: str) -> None:
        super().__init__(message)
        self.model = model


class UpstreamTimeoutError(UpstreamError):
    pass


class UpstreamHttpError(UpstreamError):
    """Non-2xx response, transport failure, or a body without usable choices."""

    def __init__(self, message: str, *, model: str, status_code: int | None = None) -> None:
        super().__init__(message, model=model)
        self.status_code = status_code


class UpstreamExhaustedError(GatewayError):
    """Every primary retry and the fallback attempt failed."""

    def __init__(self, attempts: int, last_error: UpstreamError | None) -> None:
        detail = str(last_error) if last_error is not None else "no attempts made"
        super().__init__(f"completion failed after {attempts} attempts: {detail}")
        self.attempts = attempts
        self.last_error = last_error


class SendError(GatewayError):
    """The chat platform refused a plain-text message."""
