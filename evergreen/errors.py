"""Error taxonomy shared by the gateway, the normalizer and the pipeline."""


class EvergreenError(Exception):
    """Base error for everything raised by this package."""


class ConfigError(EvergreenError):
    """Invalid or missing configuration."""


class SessionError(EvergreenError):
    """The requested operation does not fit the stored session."""


# ---------------------------------------------------------------------------
# Gateway failures
# ---------------------------------------------------------------------------


class GatewayError(EvergreenError):
    """A model request failed before a usable reply came back."""


class RateLimitedError(GatewayError):
    """The provider asked us to slow down. Transient; retried with backoff."""

    def __init__(self, message: str = "Rate limit exceeded", status: int | None = 429):
        super().__init__(message)
        self.status = status


class MalformedReplyError(GatewayError):
    """A 2xx reply that does not have the chat-completion structure."""


class FatalError(GatewayError):
    """Non-retryable transport or HTTP failure, including provider error payloads."""

    def __init__(self, message: str, status: int | None = None):
        self.status = status
        self.message = message
        if status is None:
            super().__init__(f"API Error: {message}")
        else:
            super().__init__(f"API Error ({status}): {message}")


# ---------------------------------------------------------------------------
# Normalizer failures
# ---------------------------------------------------------------------------


class ResponseError(EvergreenError):
    """The model replied but the reply cannot be used."""


class EmptyResponseError(ResponseError):
    """The reply carried no text. The finish reason tells the caller why."""

    def __init__(self, message: str, finish_reason):
        super().__init__(message)
        self.finish_reason = finish_reason


class InvalidJsonError(ResponseError):
    """The reply text is not JSON of the expected shape.

    ``raw_text`` is kept for diagnostic logging only and is never part of the
    message shown to users.
    """

    def __init__(self, message: str, raw_text: str):
        super().__init__(message)
        self.raw_text = raw_text


class PipelineError(EvergreenError):
    """A pipeline run halted. The message is the one persisted in the session."""
