"""Exception hierarchy for the transaction lifecycle.

Every error carries a ``category`` so calling code can branch on the kind of
failure (unsupported operation, network problem, ledger rejection, timeout)
either with ``isinstance`` or by the message prefix.
"""

from typing import Any, Optional


class LighterError(Exception):
    """Base class for all SDK errors."""

    category = "error"

    def __init__(self, message: str, status: Optional[int] = None, code: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code

    def __str__(self) -> str:
        return f"{self.category}: {self.message}"


class ConfigurationError(LighterError):
    """Raised when the client configuration is missing or inconsistent."""

    category = "configuration"


class ValidationError(LighterError):
    """Raised when a request fails local validation."""

    category = "validation"

    def __init__(self, message: str):
        super().__init__(message, status=400, code="VALIDATION_ERROR")


class NonceError(LighterError):
    """Raised when no usable nonce can be obtained."""

    category = "nonce"


class SignerError(LighterError):
    """Raised when the signing backend fails to produce a signature."""

    category = "signing"


class SignerCapabilityError(SignerError):
    """Raised when the active backend does not implement an operation."""

    category = "unsupported"


class SignerNotReadyError(SignerError):
    """Raised when a backend is used before ``initialize()`` completed."""

    category = "signing"


class TransactionError(LighterError):
    """Raised when the ledger reports a transaction as failed."""

    category = "rejected"

    def __init__(self, message: str, record: Any = None):
        super().__init__(message)
        self.record = record


class TransactionTimeoutError(LighterError, TimeoutError):
    """Raised when a transaction does not reach a terminal state in time."""

    category = "timeout"

    def __init__(self, message: str, tx_hash: Optional[str] = None):
        super().__init__(message)
        self.tx_hash = tx_hash


# ======================
# Transport errors
# ======================

class ApiError(LighterError):
    """Raised for non-success responses from the REST API."""

    category = "api"


class BadRequestError(ApiError):
    category = "rejected"

    def __init__(self, message: str, code: Optional[Any] = None):
        super().__init__(message, status=400, code=code)


class UnauthorizedError(ApiError):
    def __init__(self, message: str, code: Optional[Any] = None):
        super().__init__(message, status=401, code=code)


class ForbiddenError(ApiError):
    def __init__(self, message: str, code: Optional[Any] = None):
        super().__init__(message, status=403, code=code)


class NotFoundError(ApiError):
    def __init__(self, message: str, code: Optional[Any] = None):
        super().__init__(message, status=404, code=code)


class TooManyRequestsError(ApiError):
    def __init__(self, message: str, code: Optional[Any] = None):
        super().__init__(message, status=429, code=code)


class ServiceUnavailableError(ApiError):
    category = "network"

    def __init__(self, message: str, status: int = 503, code: Optional[Any] = None):
        super().__init__(message, status=status, code=code)


class NetworkError(ApiError):
    """Raised when no response was received from the API."""

    category = "network"

    def __init__(self, message: str):
        super().__init__(message, status=0)


_STATUS_ERRORS = {
    400: BadRequestError,
    401: UnauthorizedError,
    403: ForbiddenError,
    404: NotFoundError,
    429: TooManyRequestsError,
}


def error_for_status(status: int, message: str, code: Optional[Any] = None) -> ApiError:
    """Map an HTTP status code to the matching exception instance."""
    if status in _STATUS_ERRORS:
        return _STATUS_ERRORS[status](message, code=code)
    if status >= 500:
        return ServiceUnavailableError(message, status=status, code=code)
    return ApiError(message, status=status, code=code)
