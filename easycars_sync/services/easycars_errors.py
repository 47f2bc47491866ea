"""EasyCars error taxonomy.

The EasyCars API reports failures as an integer ``ResponseCode`` inside the
JSON envelope. Each code maps to one exception variant; callers dispatch on
``kind`` (or ``retryable``) rather than on the raw code.
"""

from __future__ import annotations

import enum
from typing import Optional


class EasyCarsErrorKind(str, enum.Enum):
    AUTHENTICATION = "authentication"
    TEMPORARY = "temporary"
    VALIDATION = "validation"
    FATAL = "fatal"
    UNKNOWN = "unknown"
    TRANSPORT = "transport"


# ResponseCode values in the EasyCars envelope
RESPONSE_CODE_SUCCESS = 0
RESPONSE_CODE_AUTH_FAILURE = 1
RESPONSE_CODE_TEMPORARY = 5
RESPONSE_CODE_VALIDATION = 7
RESPONSE_CODE_FATAL = 9

_RETRYABLE_KINDS = frozenset({EasyCarsErrorKind.TEMPORARY, EasyCarsErrorKind.TRANSPORT})


class EasyCarsError(Exception):
    """Base error for every failed EasyCars call."""

    kind: EasyCarsErrorKind = EasyCarsErrorKind.UNKNOWN

    def __init__(self, message: str, response_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.response_code = response_code

    @property
    def retryable(self) -> bool:
        return self.kind in _RETRYABLE_KINDS

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind.value!r}, code={self.response_code!r}, message={self.message!r})"


class EasyCarsAuthenticationError(EasyCarsError):
    kind = EasyCarsErrorKind.AUTHENTICATION


class EasyCarsTemporaryError(EasyCarsError):
    kind = EasyCarsErrorKind.TEMPORARY


class EasyCarsValidationError(EasyCarsError):
    kind = EasyCarsErrorKind.VALIDATION


class EasyCarsFatalError(EasyCarsError):
    kind = EasyCarsErrorKind.FATAL


class EasyCarsUnknownError(EasyCarsError):
    kind = EasyCarsErrorKind.UNKNOWN


class EasyCarsTransportError(EasyCarsError):
    """Connect failure, timeout or a non-JSON 5xx from the gateway."""

    kind = EasyCarsErrorKind.TRANSPORT


_ERRORS_BY_CODE = {
    RESPONSE_CODE_AUTH_FAILURE: (EasyCarsAuthenticationError, "Authentication failed"),
    RESPONSE_CODE_TEMPORARY: (EasyCarsTemporaryError, "Temporary error, please retry"),
    RESPONSE_CODE_VALIDATION: (EasyCarsValidationError, "Validation error"),
    RESPONSE_CODE_FATAL: (EasyCarsFatalError, "Fatal error"),
}


def error_for_response_code(code: int, message: Optional[str] = None) -> Optional[EasyCarsError]:
    """Exception for an envelope ResponseCode, or None when the code means success."""
    if code == RESPONSE_CODE_SUCCESS:
        return None
    error_cls, default_message = _ERRORS_BY_CODE.get(code, (EasyCarsUnknownError, None))
    if default_message is None:
        default_message = f"Unknown response code: {code}"
    return error_cls(message or default_message, response_code=code)
