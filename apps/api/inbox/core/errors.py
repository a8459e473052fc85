"""Error taxonomy shared by the sync pipeline, services and API."""


class InboxError(Exception):
    """Base exception for inbox service errors."""


class RecoverableError(InboxError):
    """Transient broker/provider or credential-state failure.

    The surrounding transaction is committed and the job retried later.
    """


class UnexpectedError(InboxError):
    """Unclassified failure or broken invariant. The transaction rolls back."""


class ForbiddenError(InboxError):
    """Raised when a user mutates an entity they do not own."""


class ItemNotFoundError(InboxError):
    """Raised when the requested entity does not exist."""


class InvalidInputError(InboxError):
    """Raised when a request payload cannot be applied."""


class UnsupportedActionError(InboxError):
    """Raised when a provider adapter lacks the requested capability."""
