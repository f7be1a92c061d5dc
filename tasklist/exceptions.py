"""Error taxonomy shared by the store and the transport adapters."""


class StorageError(Exception):
    """A collection document or attachment could not be read or written."""


class CorruptCollectionError(StorageError):
    """A collection document exists but does not hold a JSON list."""

    def __init__(self, path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Collection {path} is unreadable: {reason}")


class TaskValidationError(ValueError):
    """Input rejected before any storage access."""


class AttachmentRejected(TaskValidationError):
    """Upload exceeded the file count or size limits."""


class UserExistsError(Exception):
    """Registration for a username that is already taken."""


class AuthenticationError(Exception):
    """Missing, invalid or expired session token, or bad credentials."""


class NotFoundError(LookupError):
    """The record does not exist or belongs to another owner."""
