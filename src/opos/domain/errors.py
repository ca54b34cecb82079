class AppError(Exception):
    """Base app error."""


class ValidationError(AppError):
    pass


class NotFoundError(AppError):
    pass


class TransportError(AppError):
    """Remote call failed without a definitive answer (network, timeout, non-2xx)."""


class DuplicateError(AppError):
    """Remote already recorded this correlation id."""


class StorageUnavailable(AppError):
    """Local persistence cannot be read or written."""
