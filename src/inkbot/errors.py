"""Exception hierarchy for inkbot."""


class InkbotError(Exception):
    """Base class for all inkbot errors."""


class ValidationError(InkbotError):
    """Input was rejected before any work was done."""


class StorageError(InkbotError):
    """Conversations could not be written to durable storage."""


class ChatError(InkbotError):
    """A chat request to the backend failed.

    ``cause`` is a human-readable reason, ``base_url`` the backend that
    was attempted.
    """

    def __init__(self, cause: str, base_url: str) -> None:
        super().__init__(cause)
        self.cause = cause
        self.base_url = base_url


class TransportError(ChatError):
    """The backend could not be reached or answered with something unusable."""


class BackendError(ChatError):
    """The backend answered but reported an error of its own."""
