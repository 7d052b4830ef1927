# report_assistant/core/errors.py


class ReportAssistantError(Exception):
    """Base class for every failure the report pipeline raises on purpose."""


class ConfigurationError(ReportAssistantError):
    """Required credentials are missing. Nothing downstream may run."""


class SchemaFetchError(ReportAssistantError):
    """Schema introspection failed, so no grounding document can be built."""


class QueryExecutionError(ReportAssistantError):
    """
    Raw execution failure. The message is the backend's error text and is
    what the error classifier matches against.
    """

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class LLMError(ReportAssistantError):
    """Chat-completion call failed (HTTP error, timeout, malformed body)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class LLMRateLimitError(LLMError):
    pass


class LLMCreditsExhaustedError(LLMError):
    pass
