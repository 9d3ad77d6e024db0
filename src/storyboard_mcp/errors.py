"""Structured error handling — analysis error taxonomy, classification, and tool error model."""

from __future__ import annotations

import json
from enum import Enum

from pydantic import BaseModel, ValidationError


class ErrorCategory(str, Enum):
    """Categories of errors for diagnostics."""

    CONFIGURATION = "CONFIGURATION"
    API_PERMISSION_DENIED = "API_PERMISSION_DENIED"
    NETWORK_ERROR = "NETWORK_ERROR"
    RESPONSE_FORMAT = "RESPONSE_FORMAT"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    FILE_NOT_FOUND = "FILE_NOT_FOUND"
    FILE_UNSUPPORTED = "FILE_UNSUPPORTED"
    FILE_TOO_LARGE = "FILE_TOO_LARGE"
    UNKNOWN = "UNKNOWN"


class AnalysisError(Exception):
    """Base class for failures of one analysis attempt.

    Every subclass is terminal for the attempt that raised it.
    """

    category: ErrorCategory = ErrorCategory.UNKNOWN
    hint: str = "Analysis failed — retry or check the video file"
    prompts_for_credential: bool = False

    @property
    def display_message(self) -> str:
        message = str(self) or self.hint
        return message if message == self.hint else f"{message} ({self.hint})"


class ConfigurationError(AnalysisError):
    """No credential is available; raised before any remote call."""

    category = ErrorCategory.CONFIGURATION
    hint = "Set a Gemini API key to continue"
    prompts_for_credential = True


class AuthError(AnalysisError):
    """The remote service rejected the credential."""

    category = ErrorCategory.API_PERMISSION_DENIED
    hint = "The API key was rejected — enter a valid Gemini API key"
    prompts_for_credential = True


class TransportError(AnalysisError):
    """Network or call failure with no more specific classification."""

    category = ErrorCategory.NETWORK_ERROR
    hint = "The request to Gemini failed — check connectivity and retry"


class ResponseFormatError(AnalysisError):
    """The model returned malformed or incomplete structured output."""

    category = ErrorCategory.RESPONSE_FORMAT
    hint = "The model returned an incomplete storyboard — retry the analysis"


class InvalidTransitionError(ValueError):
    """Operation not allowed in the session's current state."""


_AUTH_CODES = {401, 403}
_AUTH_STATUSES = {"PERMISSION_DENIED", "UNAUTHENTICATED"}
_AUTH_PATTERNS: tuple[str, ...] = (
    "api key not valid",
    "api_key_invalid",
    "permission_denied",
    "unauthenticated",
)


def is_auth_failure(error: Exception) -> bool:
    """Check the status code, status string, and message for a rejected credential.

    Only phrases from the API are matched in the message; a bare ``401`` or
    ``403`` may just be part of a path or a file name.
    """
    if getattr(error, "code", None) in _AUTH_CODES:
        return True
    if str(getattr(error, "status", "") or "").upper() in _AUTH_STATUSES:
        return True
    s = str(error).lower()
    return any(p in s for p in _AUTH_PATTERNS)


def classify_exception(error: Exception) -> AnalysisError:
    """Map an arbitrary exception from the remote call to an AnalysisError."""
    if isinstance(error, AnalysisError):
        return error
    if isinstance(error, (ValidationError, json.JSONDecodeError)):
        return ResponseFormatError(str(error))
    if is_auth_failure(error):
        return AuthError(str(error))
    if isinstance(error, TimeoutError):
        return TransportError(str(error) or "Request timed out")
    return TransportError(str(error) or type(error).__name__)


class ToolError(BaseModel):
    """Structured error returned from any tool."""

    error: str
    category: str
    hint: str
    retryable: bool = False
    prompt_for_credential: bool = False


def categorize_error(error: Exception) -> tuple[ErrorCategory, str]:
    """Map an exception to an ErrorCategory + human-readable hint."""
    if isinstance(error, AnalysisError):
        return error.category, error.hint
    if isinstance(error, InvalidTransitionError):
        return ErrorCategory.INVALID_TRANSITION, "Operation not available in the current session state"
    if isinstance(error, FileNotFoundError):
        return ErrorCategory.FILE_NOT_FOUND, "File not found — check the path"

    s = str(error).lower()
    if "unsupported video" in s:
        return (
            ErrorCategory.FILE_UNSUPPORTED,
            "File type not supported — use mp4, webm, mov, avi, mkv, mpeg, wmv, or 3gpp",
        )
    if "exceeds" in s and "limit" in s:
        return ErrorCategory.FILE_TOO_LARGE, "Video is larger than the 200 MB upload limit"
    return ErrorCategory.UNKNOWN, str(error)


def make_tool_error(error: Exception) -> dict:
    """Create a serialisable ToolError dict from an exception."""
    cat, hint = categorize_error(error)
    return ToolError(
        error=str(error),
        category=cat.value,
        hint=hint,
        retryable=isinstance(error, (TransportError, ResponseFormatError)),
        prompt_for_credential=getattr(error, "prompts_for_credential", False),
    ).model_dump(mode="json")
