"""Error taxonomy shared by the chat pipeline, tools and HTTP layer.

Every error carries an ``ErrorKind`` code and the HTTP status used when it
ends a request before any streamed output was produced. Most of these never
reach the client as an HTTP error: tools convert them into structured
payloads and persistence only logs them.
"""

from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    PROVIDER_SELECTION_ERROR = "PROVIDER_SELECTION_ERROR"
    TOOL_EXECUTION_ERROR = "TOOL_EXECUTION_ERROR"
    CACHE_MISS = "CACHE_MISS"
    MODEL_COMPATIBILITY_ERROR = "MODEL_COMPATIBILITY_ERROR"
    PERSISTENCE_ERROR = "PERSISTENCE_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    CHAT_ERROR = "CHAT_ERROR"


class AssistantError(Exception):
    kind: ErrorKind = ErrorKind.CHAT_ERROR
    status_code: int = 500

    def __init__(self, message: str, detail: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_dict(self) -> dict:
        body = {"error": self.kind.value, "message": self.message}
        if self.detail is not None:
            body["detail"] = self.detail
        return body


class ProviderSelectionError(AssistantError):
    kind = ErrorKind.PROVIDER_SELECTION_ERROR
    status_code = 503


class ToolExecutionError(AssistantError):
    kind = ErrorKind.TOOL_EXECUTION_ERROR


class CacheMissError(AssistantError):
    kind = ErrorKind.CACHE_MISS
    status_code = 404


class ModelCompatibilityError(AssistantError):
    kind = ErrorKind.MODEL_COMPATIBILITY_ERROR
    status_code = 400

    def __init__(self, message: str, compatibility_issue: str):
        super().__init__(message, detail={"compatibilityIssue": compatibility_issue})
        self.compatibility_issue = compatibility_issue

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["compatibilityIssue"] = self.compatibility_issue
        return body


class PersistenceError(AssistantError):
    kind = ErrorKind.PERSISTENCE_ERROR


class ValidationError(AssistantError):
    kind = ErrorKind.VALIDATION_ERROR
    status_code = 422


def classify_provider_error(exc: Exception) -> AssistantError:
    """Map a raw provider exception onto the taxonomy.

    Providers report unsupported tool calling or reasoning modes only through
    their error text, so the match is on keywords.
    """
    if isinstance(exc, AssistantError):
        return exc
    message = str(exc) or type(exc).__name__
    lowered = message.lower()
    if "tool" in lowered or "function" in lowered:
        return ModelCompatibilityError(message, compatibility_issue="tools")
    if "thinking" in lowered or "reasoning" in lowered:
        return ModelCompatibilityError(message, compatibility_issue="thinking")
    return AssistantError(message)
