from typing import Optional, Any


class BridgeError(Exception):
    """
    Base exception for the WhatsApp bridge.
    """
    def __init__(self, message: str, code: str = "INTERNAL_ERROR", status_code: int = 500, details: Optional[Any] = None):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details
        super().__init__(self.message)


class SessionNotFoundError(BridgeError):
    """
    Raised when no live WhatsApp connection (or conversation context) exists for an id.
    """
    def __init__(self, message: str = "Aucune session active pour cet id", details: Optional[Any] = None):
        super().__init__(message, code="NOT_FOUND", status_code=404, details=details)


class NoActiveSessionError(BridgeError):
    """
    Raised when a send is requested for a merchant without a live connection.
    """
    def __init__(self, message: str = "Session WhatsApp non active", details: Optional[Any] = None):
        super().__init__(message, code="NO_ACTIVE_SESSION", status_code=500, details=details)


class SendFailedError(BridgeError):
    """
    Raised when the protocol connection fails to deliver an outbound message.
    """
    def __init__(self, message: str = "WhatsApp timeout", details: Optional[Any] = None):
        super().__init__(message, code="SEND_TIMEOUT", status_code=408, details=details)


class InternalError(BridgeError):
    """
    Raised when a lifecycle step (logout, cleanup) fails.
    """
    def __init__(self, message: str = "Internal error", details: Optional[Any] = None):
        super().__init__(message, code="INTERNAL_ERROR", status_code=500, details=details)


class ValidationError(BridgeError):
    """
    Raised when input validation fails.
    """
    def __init__(self, message: str = "Validation error", details: Optional[Any] = None):
        super().__init__(message, code="VALIDATION_ERROR", status_code=422, details=details)


class MalformedSessionInitError(ValidationError):
    """
    Raised when a session-init message does not carry a merchantId-productId pair.
    """
    def __init__(self, message: str = "Malformed session-init message", details: Optional[Any] = None):
        super().__init__(message, details=details)


class CollaboratorError(BridgeError):
    """
    Raised when an external service (session DB, AI) fails.
    """
    def __init__(self, message: str = "External service error", details: Optional[Any] = None):
        super().__init__(message, code="EXTERNAL_SERVICE_ERROR", status_code=502, details=details)


class ProtocolError(BridgeError):
    """
    Raised when the WhatsApp protocol bridge breaks its contract.
    """
    def __init__(self, message: str = "WhatsApp protocol error", details: Optional[Any] = None):
        super().__init__(message, code="PROTOCOL_ERROR", status_code=502, details=details)
