"""Custom exception classes for the upload engine."""

from typing import Optional


class UploadError(Exception):
    """
    Base exception class for all upload-related errors.
    """
    pass


class AmbiguousDestinationError(UploadError):
    """
    Raised when more than one shared or root item matches the first
    segment of the destination path.
    """

    def __init__(self, first_segment: str):
        self.first_segment = first_segment
        super().__init__(
            f"More than one shared or root item named '{first_segment}' was found."
        )


class StoreRequestError(UploadError):
    """
    Raised when the remote store rejects a request or cannot be reached.
    """

    def __init__(self, message: str, status_code: Optional[int] = None, code: Optional[str] = None):
        self.status_code = status_code
        self.code = code
        super().__init__(message)


class ItemConflictError(StoreRequestError):
    """
    Raised when an item already exists at the requested address.
    """
    pass


class TransientProviderError(UploadError):
    """
    Base class for provider faults that are worth retrying as a whole session.
    """
    pass


class UploadSessionStateError(TransientProviderError):
    """
    Raised when an upload-session response arrives without the session
    state it is required to carry.
    """
    pass


class ResumabilityExhaustedError(UploadError):
    """
    Raised when the provider reports no pending ranges for a session that
    has not completed.
    """
    pass


class AuthenticationError(UploadError):
    """
    Raised when the authentication provider does not return a token.
    """
    pass


class OperationCancelled(Exception):
    """
    Raised at a cooperative checkpoint once the run has been cancelled.
    """
    pass
