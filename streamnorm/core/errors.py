"""
streamnorm - Error Definitions

Error taxonomy with infra vs semantic classification.

Only a few conditions ever leave the normalizer:
- Cancellation (raised by the frame reader, re-raised after finalization)
- Transport failures (wrapped, re-raised after finalization)
- Misuse (bad configuration, an already consumed response body)

Malformed payloads are absorbed and never surface as exceptions.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class ErrorType(str, Enum):
    """Error classification."""
    INFRA = "infra_error"
    SEMANTIC = "semantic_error"


@dataclass
class ErrorDetails:
    """Full error information, serializable for logs and callers."""
    # Core fields (always present)
    code: str
    message: str
    type: ErrorType

    # Trace fields
    session_id: str = ""
    request_id: str = ""

    # Recovery fields
    retryable: bool = False
    param: Optional[str] = None

    # Debug fields
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "code": self.code,
            "message": self.message,
            "type": self.type.value,
            "retryable": self.retryable,
        }

        if self.session_id:
            result["session_id"] = self.session_id
        if self.request_id:
            result["request_id"] = self.request_id
        if self.param:
            result["param"] = self.param
        if self.details:
            result["details"] = self.details

        return {"error": result}


class StreamNormalizerError(Exception):
    """Base exception for all streamnorm errors."""

    def __init__(self, error: ErrorDetails):
        self.error = error
        super().__init__(error.message)

    @property
    def code(self) -> str:
        return self.error.code


# ============================================================
# Infra Errors
# ============================================================

class InfraError(StreamNormalizerError):
    """Base class for transport-side failures."""
    pass


class StreamCancelledError(InfraError):
    """The caller cancelled the stream while it was being read."""

    def __init__(self, session_id: str = "", request_id: str = ""):
        super().__init__(
            ErrorDetails(
                code="stream_cancelled",
                message="Stream was cancelled by the caller",
                type=ErrorType.INFRA,
                session_id=session_id,
                request_id=request_id,
                retryable=False,
            )
        )


class StreamTransportError(InfraError):
    """The underlying byte stream failed for a reason other than cancellation."""

    def __init__(self, message: str, session_id: str = "", request_id: str = ""):
        super().__init__(
            ErrorDetails(
                code="stream_transport_error",
                message=message,
                type=ErrorType.INFRA,
                session_id=session_id,
                request_id=request_id,
                retryable=True,
            )
        )

    def record_progress(self, content_events: int):
        """
        Note how much content already reached the sink.

        Once content went out a retry would repeat it, so the error is
        no longer retryable.
        """
        self.error.details["content_events"] = content_events
        if content_events > 0:
            self.error.retryable = False


# ============================================================
# Semantic Errors (caller must fix usage)
# ============================================================

class SemanticError(StreamNormalizerError):
    """Base class for usage errors."""
    pass


class ResponseBodyConsumedError(SemanticError):
    """The HTTP response body was already read before normalization began."""

    def __init__(self, request_id: str = ""):
        super().__init__(
            ErrorDetails(
                code="response_body_consumed",
                message="Response body is empty or was already consumed",
                type=ErrorType.SEMANTIC,
                request_id=request_id,
                retryable=False,
            )
        )


class InvalidConfigError(SemanticError):
    """A configuration value is out of range."""

    def __init__(self, param: str, message: str):
        super().__init__(
            ErrorDetails(
                code="invalid_config",
                message=message,
                type=ErrorType.SEMANTIC,
                param=param,
                retryable=False,
            )
        )


def wrap_transport_error(
    error: BaseException,
    session_id: str = "",
    request_id: str = "",
) -> StreamNormalizerError:
    """
    Convert an arbitrary exception raised by the byte source.

    Our own errors pass through untouched; anything else becomes a
    StreamTransportError (callers should raise it `from` the original).
    """
    if isinstance(error, StreamNormalizerError):
        return error

    return StreamTransportError(
        f"{type(error).__name__}: {error}",
        session_id=session_id,
        request_id=request_id,
    )
