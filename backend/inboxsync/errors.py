"""Service-level errors for the notification engine.

Services raise these; the API layer turns them into HTTP responses using
``status_code`` and the batch runner records them per store.
"""


class NotificationServiceError(Exception):
    """Base error carrying the HTTP status the API should answer with."""

    status_code = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(NotificationServiceError):
    """Caller input was rejected; nothing was written."""

    status_code = 400


class NotFoundError(NotificationServiceError):
    """Target record does not exist for the calling store."""

    status_code = 404


class SignalSourceError(NotificationServiceError):
    """A signal source failed to produce signals for a store."""

    status_code = 502


class PersistenceError(NotificationServiceError):
    """The inbox or rule store could not be read or written."""

    status_code = 503


class ReconciliationTimeoutError(NotificationServiceError):
    """A store's reconciliation pass ran past its deadline."""

    status_code = 504


class ReconciliationInProgressError(NotificationServiceError):
    """Another reconciliation for the same store and topic is running."""

    status_code = 409
