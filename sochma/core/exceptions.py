from typing import Optional, Any


class SochmaError(Exception):
    """
    Base exception for the Sochma bot.
    """
    def __init__(self, message: str, code: str = "INTERNAL_ERROR", status_code: int = 500, details: Optional[Any] = None):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details
        super().__init__(self.message)


class NormalizationError(SochmaError):
    """
    Raised when an inbound update has no sender or is neither a message nor a callback.
    """
    def __init__(self, message: str = "Unrecognized update", details: Optional[Any] = None):
        super().__init__(message, code="NORMALIZATION_ERROR", status_code=400, details=details)


class ConflictError(SochmaError):
    """
    Raised when a record is no longer in the state a transition expected.
    """
    def __init__(self, message: str = "Registration state changed concurrently", details: Optional[Any] = None):
        super().__init__(message, code="CONFLICT", status_code=409, details=details)


class NotFoundError(SochmaError):
    """
    Raised when a requested record is not found.
    """
    def __init__(self, message: str = "Resource not found", details: Optional[Any] = None):
        super().__init__(message, code="NOT_FOUND", status_code=404, details=details)


class AuthenticationError(SochmaError):
    """
    Raised when authentication fails.
    """
    def __init__(self, message: str = "Authentication failed", details: Optional[Any] = None):
        super().__init__(message, code="AUTHENTICATION_FAILED", status_code=401, details=details)


class ValidationError(SochmaError):
    """
    Raised when user input fails the rule of the current registration step.
    """
    def __init__(self, message: str = "Validation error", details: Optional[Any] = None):
        super().__init__(message, code="VALIDATION_ERROR", status_code=422, details=details)


class ServiceUnavailable(SochmaError):
    """
    Raised when the ledger or the messaging backend cannot be reached.
    """
    def __init__(self, message: str = "Service unavailable", details: Optional[Any] = None, code: str = "SERVICE_UNAVAILABLE"):
        super().__init__(message, code=code, status_code=503, details=details)


class GatewayUnavailable(ServiceUnavailable):
    """
    Raised when transient delivery failures outlast the retry budget.
    """
    def __init__(self, message: str = "Messaging provider unavailable", details: Optional[Any] = None):
        super().__init__(message, details=details, code="GATEWAY_UNAVAILABLE")


class DeliveryError(SochmaError):
    """
    Raised when the messaging provider permanently rejects a message.
    """
    def __init__(self, message: str = "Message delivery failed", details: Optional[Any] = None):
        super().__init__(message, code="DELIVERY_ERROR", status_code=502, details=details)
