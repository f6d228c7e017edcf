"""Custom exception types for consistent error handling."""


class DiscoveryError(Exception):
    """Base class for errors surfaced by the discovery pipeline."""

    code = "DiscoveryError"


class NotAuthenticatedError(DiscoveryError):
    """Raised when there is no authenticated subject for the session."""

    code = "NotAuthenticated"

    def __init__(self, message: str = "User not authenticated"):
        super().__init__(message)


class LocationUnavailableError(DiscoveryError):
    """Raised when the subject has no known coordinate."""

    code = "LocationUnavailable"

    def __init__(self, message: str = "Location required for matching"):
        super().__init__(message)


class SubjectNotFoundError(DiscoveryError):
    """Raised when the subject's profile document does not exist."""

    code = "SubjectNotFound"

    def __init__(self, user_id: str):
        super().__init__(f"User profile not found: {user_id}")
        self.user_id = user_id


class RetrievalFailedError(DiscoveryError):
    """Raised when Firestore queries fail or are unavailable."""

    code = "RetrievalFailed"

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message)
        self.cause = cause


class DecodeFailedError(DiscoveryError):
    """Raised when a single user document fails validation."""

    code = "DecodeFailed"

    def __init__(self, document_id: str, reason: str):
        super().__init__(f"Malformed user document {document_id!r}: {reason}")
        self.document_id = document_id
