"""Exception hierarchy shared by the web API, services and client."""


class PaperChatError(Exception):
    """Base exception for PaperChat errors."""

    status_code = 500


class AuthenticationError(PaperChatError):
    """Raised when a session is missing or credentials are invalid."""

    status_code = 401


class ValidationError(PaperChatError):
    """Raised when a required field is missing or malformed."""

    status_code = 400


class NotFoundError(PaperChatError):
    """Raised when a requested resource does not exist for the caller."""

    status_code = 404


class UpstreamError(PaperChatError):
    """Raised when a dependency (store, arXiv, completion API) fails."""

    status_code = 500

    def __init__(self, message: str, details: str | None = None) -> None:
        super().__init__(message)
        self.details = details


class StoreError(UpstreamError):
    """Raised by the client-side store adapter on transport or HTTP errors."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status
