"""Error taxonomy shared by the event log, resilience primitives and agents."""
import traceback
from enum import Enum
from typing import Any

import pydantic


class PipelineError(Exception):
    """Base class for every error raised across the pipeline boundary."""

    code = "UNKNOWN"

    def __init__(self, message: str, *, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    @property
    def trace(self) -> str | None:
        """Formatted traceback of the error (and its cause), if it was raised."""
        if self.__traceback__ is None and self.__cause__ is None:
            return None
        return "".join(traceback.format_exception(type(self), self, self.__traceback__))

    def to_dict(self) -> dict[str, Any]:
        data = {"error": type(self).__name__, "code": self.code, "message": self.message}
        if self.details:
            data["details"] = self.details
        return data


class ValidationError(PipelineError):
    """Malformed input caught before any side effect."""

    code = "VALIDATION"


class NotFoundError(PipelineError):
    """A referenced entity does not exist."""

    code = "NOT_FOUND"


class PersistenceError(PipelineError):
    """A write to the record store failed."""

    code = "PERSISTENCE"


class ModelInvocationError(PipelineError):
    """A generation call failed without a usable fallback."""

    code = "MODEL_INVOCATION"


class FallbackFailed(ModelInvocationError):
    """Both the primary and the fallback model failed."""

    code = "FALLBACK_FAILED"

    def __init__(
        self,
        primary_model: str,
        primary_error: BaseException,
        fallback_model: str,
        fallback_error: BaseException,
    ):
        message = (
            f"Model attempts failed: primary model {primary_model} error: {primary_error}; "
            f"fallback model {fallback_model} error: {fallback_error}"
        )
        super().__init__(
            message,
            details={
                "primary_model": primary_model,
                "primary_error": str(primary_error),
                "fallback_model": fallback_model,
                "fallback_error": str(fallback_error),
            },
        )
        self.primary_error = primary_error
        self.fallback_error = fallback_error


class UploadExhausted(PipelineError):
    """The upload retry budget ran out."""

    code = "UPLOAD_EXHAUSTED"

    def __init__(self, attempts: int, last_message: str):
        super().__init__(
            f"Upload failed after {attempts} attempts: {last_message}",
            details={"attempts": attempts, "last_message": last_message},
        )
        self.attempts = attempts
        self.last_message = last_message


class UnknownError(PipelineError):
    """Catch-all for errors that are not part of the taxonomy."""

    code = "UNKNOWN"


class ProviderErrorKind(str, Enum):
    """Failure tags raised by model provider adapters."""
    TIMEOUT = "timeout"
    INVALID_CREDENTIALS = "invalid_credentials"
    MALFORMED_OUTPUT = "malformed_output"
    UNSUPPORTED_PARAMETER = "unsupported_parameter"
    OUTPUT_TRUNCATED = "output_truncated"
    UNKNOWN = "unknown"


class ProviderError(PipelineError):
    """Tagged failure of a single model provider call."""

    code = "PROVIDER"

    def __init__(self, kind: ProviderErrorKind, message: str, *, model: str | None = None):
        super().__init__(message, details={"kind": kind.value, "model": model})
        self.kind = kind
        self.model = model


def normalize_error(error: BaseException) -> PipelineError:
    """
    Map any exception onto the taxonomy.

    Pipeline errors pass through untouched; everything else becomes an
    ``UnknownError`` chained to the original so its traceback survives.
    """
    if isinstance(error, PipelineError):
        return error
    message = str(error) or type(error).__name__
    normalized = UnknownError(message, details={"type": type(error).__name__})
    normalized.__cause__ = error
    normalized.__traceback__ = error.__traceback__
    return normalized


def validation_error(message: str, exc: pydantic.ValidationError) -> ValidationError:
    """Wrap a pydantic failure with JSON-safe error details."""
    errors = exc.errors(include_url=False, include_context=False, include_input=False)
    return ValidationError(message, details={"errors": errors})
