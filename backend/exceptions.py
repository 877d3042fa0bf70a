class LibraryError(Exception):
    """Base class for errors raised by the circulation core."""


class LoanRejected(LibraryError):
    """A loan operation failed validation; nothing was changed."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class FineRejected(LibraryError):
    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class ReferenceConflict(LibraryError):
    """Deleting the entity would leave loans or fines pointing at nothing."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class NotFound(LibraryError):
    pass


class PersistenceError(LibraryError):
    """The store refused a write. The session has been rolled back."""
