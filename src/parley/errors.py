"""Exception types shared across the orchestration pipeline."""


class ParleyError(Exception):
    """Base class for parley errors."""


class ConfigurationError(ParleyError):
    """Fatal configuration problem for a single request (never retried).

    Raised when no API key is configured for the resolved provider or when the
    resolved provider/model combination is unknown.
    """

    NO_API_KEY = "no_api_key"
    MODEL_NOT_FOUND = "model_not_found"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.code = code


class ProviderStreamError(ParleyError):
    """The model provider stream failed mid-round."""

    def __init__(self, message: str, provider: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class ToolExecutionError(ParleyError):
    """A tool failed; reported back to the model as an error result."""


class SegmentationError(ParleyError):
    """Conversation segmentation failed; the message keeps its current segment."""


class NotFoundError(ParleyError):
    """A referenced agent, session or conversation does not exist."""


class InputRejectedError(ParleyError):
    """An inbound message was rejected by the input defense."""
