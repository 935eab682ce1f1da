"""Exceptions raised by the local authentication stack."""


class AuthError(Exception):
    """Base class for authentication storage and service errors."""


class StorageUnavailable(AuthError):
    """Raised when the database directory or file cannot be opened."""


class SchemaError(AuthError):
    """Raised when the schema resource is missing or cannot be applied."""


class CloseError(AuthError):
    """Raised internally when releasing the database fails. Never propagated."""


class StoreClosedError(AuthError):
    """Raised when the database is used before init() or after close()."""


class DuplicateUsernameError(AuthError):
    """Raised when a username is already taken (case-insensitive)."""


class UnknownUserError(AuthError):
    """Raised when a session references a user that does not exist."""


class AuthValidationError(AuthError):
    """Raised when a username or password fails validation."""


class InvalidCredentialsError(AuthError):
    """Raised when a login attempt does not match a stored account."""
