# core/errors.py
"""
Error taxonomy for a chat turn.

Errors raised at or above the synthesizer boundary end the turn and are
rendered by the API layer. ClassificationFailure and ExecutionFailure are
internal: the pipeline recovers from them.
"""

from typing import Optional


class ChatError(Exception):
    status_code: int = 500
    error_type: str = "internal_error"
    public_message: str = "An unexpected error occurred"

    def __init__(self, message: Optional[str] = None, detail: Optional[str] = None):
        super().__init__(message or self.public_message)
        self.message = message or self.public_message
        self.detail = detail


class Unauthenticated(ChatError):
    status_code = 401
    error_type = "unauthenticated"
    public_message = "Authentication required"


class RateLimited(ChatError):
    status_code = 429
    error_type = "rate_limited"
    public_message = "Too many requests, please wait a moment"

    def __init__(self, bucket: str, retry_after: int, message: Optional[str] = None):
        super().__init__(message)
        self.bucket = bucket
        self.retry_after = retry_after


class MalformedInput(ChatError):
    status_code = 400
    error_type = "malformed_input"
    public_message = "Invalid request body"


class ClassificationFailure(ChatError):
    error_type = "classification_failure"
    public_message = "Could not classify the message"


class ExecutionFailure(ChatError):
    error_type = "execution_failure"
    public_message = "Could not retrieve financial data"


class UpstreamGenerationFailure(ChatError):
    status_code = 502
    error_type = "upstream_generation_failure"
    public_message = "The assistant could not generate a response"


class NotFound(ChatError):
    status_code = 404
    error_type = "not_found"
    public_message = "Resource not found"


class ServiceUnavailable(ChatError):
    status_code = 503
    error_type = "service_unavailable"
    public_message = "Chat temporarily unavailable"
