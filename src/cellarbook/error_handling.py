"""
Standardized Error Handling for Cellarbook

Provides consistent error types and handling patterns for the I/O
collaborators (storage, image upload, AI glue). The query and similarity
engines never raise for malformed data and do not use this module.
"""

import json
import logging
from typing import Optional, Any

from openai import APIError, RateLimitError
from pydantic import ValidationError

logger = logging.getLogger(__name__)


class CellarError(Exception):
    """Base exception for Cellarbook."""
    pass


class LLMError(CellarError):
    """LLM-related errors (API failures, unparseable or invalid responses)."""
    pass


class DataValidationError(CellarError):
    """Invalid user input (blank chat message, malformed image payload)."""
    pass


class StorageError(CellarError):
    """Supabase table or storage bucket operation failed."""
    pass


class ConfigurationError(CellarError):
    """A required setting (API key, Supabase URL) is missing."""
    pass


def handle_llm_error(error: Exception, operation: str) -> LLMError:
    """
    Wrap a failure from the OpenAI call path as an LLMError.

    The caller raises the result ``from error`` so the original stays attached.
    """
    if isinstance(error, ValidationError):
        message = f"The reply for {operation} had an unexpected shape"
    elif isinstance(error, json.JSONDecodeError):
        message = f"The reply for {operation} was not valid JSON"
    elif isinstance(error, RateLimitError):
        message = f"OpenAI is rate limiting requests; retry {operation} shortly"
    elif isinstance(error, APIError):
        message = f"OpenAI request for {operation} failed: {error}"
    else:
        message = f"Unexpected {type(error).__name__} during {operation}"

    logger.error(f"{message} ({error})")
    return LLMError(message)


class ErrorContext:
    """
    Context manager for UI actions that should report, not crash.

    Only CellarError subclasses are captured; anything else propagates.

    Usage:
        with ErrorContext("saving note") as ctx:
            repo.save_user_note(sb, wine_id, note)
        if ctx.error:
            st.error(ctx.message)
    """

    def __init__(self, operation: str):
        self.operation = operation
        self.error: Optional[Exception] = None

    @property
    def message(self) -> str:
        if self.error is None:
            return ""
        return f"Failed {self.operation}: {self.error}"

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> Any:
        if exc_type is not None and issubclass(exc_type, CellarError):
            self.error = exc_val
            logger.error(f"Error in {self.operation}: {exc_type.__name__} - {exc_val}")
            return True
        return False


# Export key functions and classes
__all__ = [
    'CellarError',
    'LLMError',
    'DataValidationError',
    'StorageError',
    'ConfigurationError',
    'handle_llm_error',
    'ErrorContext'
]
