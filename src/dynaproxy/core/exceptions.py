"""
Custom Exceptions for dynaproxy
===============================

Structured error handling lets the HTTP layer map failures to responses by
type rather than by parsing strings.

Error Codes:
- 1xxx: Client errors (no route for the request)
- 3xxx: Resource errors (inference service, upstream backends)
- 4xxx: Forwarding errors
- 5xxx: System errors (configuration, unexpected)
"""

from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Structured error codes for client-facing messages"""

    # 1xxx: Client Errors
    NO_MATCHING_ROUTE = 1004

    # 3xxx: Resource Errors
    INFERENCE_UNAVAILABLE = 3001
    INFERENCE_TIMEOUT = 3002
    INFERENCE_INVALID_RESPONSE = 3003
    UPSTREAM_UNAVAILABLE = 3004

    # 4xxx: Forwarding Errors
    FORWARDING_SETUP_FAILED = 4001

    # 5xxx: System Errors
    INTERNAL_ERROR = 5001
    CONFIGURATION_ERROR = 5003


class ProxyError(Exception):
    """Base exception for all dynaproxy errors"""

    http_status = 500

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: dict[str, Any] | None = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for structured logging"""
        return {
            'error_type': self.__class__.__name__,
            'error_code': int(self.error_code),
            'message': self.message,
            'details': self.details
        }

    def user_message(self) -> str:
        """Get client-facing error message based on error code"""
        code_messages = {
            ErrorCode.NO_MATCHING_ROUTE: "No matching route found",
            ErrorCode.INFERENCE_UNAVAILABLE: "Inference service unavailable",
            ErrorCode.INFERENCE_TIMEOUT: "Inference service timed out",
            ErrorCode.INFERENCE_INVALID_RESPONSE: "Inference service returned an invalid target",
            ErrorCode.UPSTREAM_UNAVAILABLE: "Upstream backend unavailable",
            ErrorCode.FORWARDING_SETUP_FAILED: "Proxy routing error",
            ErrorCode.INTERNAL_ERROR: "Internal server error",
            ErrorCode.CONFIGURATION_ERROR: "Configuration error",
        }
        return f"Error {self.error_code}: {code_messages.get(self.error_code, self.message)}"


class ConfigParseError(ProxyError):
    """Raised when the routing configuration cannot be read or parsed"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, ErrorCode.CONFIGURATION_ERROR, details)


class InferenceError(ProxyError):
    """Base class for inference-layer failures; always absorbed by the engine"""

    http_status = 503


class InferenceTimeout(InferenceError):
    """Raised when the inference call exceeds its timeout"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, ErrorCode.INFERENCE_TIMEOUT, details)


class InferenceTransportError(InferenceError):
    """Raised when the inference service cannot be reached or rejects the call"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, ErrorCode.INFERENCE_UNAVAILABLE, details)


class InferenceInvalidResponse(InferenceError):
    """Raised when the inference text is not a single absolute URL"""

    def __init__(self, message: str, raw_text: str = "", details: dict[str, Any] | None = None):
        super().__init__(message, ErrorCode.INFERENCE_INVALID_RESPONSE, details)
        self.raw_text = raw_text


class NoMatchingRoute(ProxyError):
    """Raised when no configured rule matches the request path"""

    http_status = 404

    def __init__(self, path: str, details: dict[str, Any] | None = None):
        super().__init__(f"No matching route found for {path}", ErrorCode.NO_MATCHING_ROUTE, details)
        self.path = path


class UpstreamConnectionError(ProxyError):
    """Raised when the resolved upstream cannot be reached or times out"""

    http_status = 502

    def __init__(self, target: str, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, ErrorCode.UPSTREAM_UNAVAILABLE, details)
        self.target = target


class ForwardingSetupError(ProxyError):
    """Raised when a request to the target cannot be constructed"""

    def __init__(self, target: str, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, ErrorCode.FORWARDING_SETUP_FAILED, details)
        self.target = target
