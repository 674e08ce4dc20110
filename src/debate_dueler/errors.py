class DuelerError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(DuelerError):
    """Malformed answer, question or request context. Nothing was written."""

    status_code = 400


class NotFoundError(DuelerError):
    """Unknown deck, question or session. Nothing was written."""

    status_code = 404


class StorageError(DuelerError):
    """The backing store could not be reached; the caller may retry."""

    status_code = 503
