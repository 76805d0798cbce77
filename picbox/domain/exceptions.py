"""Domain-specific exceptions.

Provider errors are split by how the caller should react: lock contention is
retried, everything else is surfaced to the caller of the sync attempt.
"""


class DomainException(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str, details: dict | None = None) -> None:
        """Initialize domain exception.

        Args:
            message: Human-readable error message.
            details: Optional dictionary with additional error context.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(DomainException):
    """Raised when domain validation fails."""


class InvalidJobError(ValidationError):
    """Raised when a save_url job is missing a path, token or absolute source URL."""


class ResourceNotFoundError(DomainException):
    """Raised when a requested resource does not exist."""


class DuplicateResourceError(DomainException):
    """Raised when attempting to create a duplicate resource."""


class EmailExistsError(DuplicateResourceError):
    """Raised when registering an email address that is already taken."""


class AuthenticationError(DomainException):
    """Raised when supplied credentials are rejected."""


class IncorrectPasswordError(AuthenticationError):
    """Raised when the password does not match the stored hash."""


class DatabaseUnavailableError(DomainException):
    """Raised when the credential store cannot be reconnected."""


class ProviderError(DomainException):
    """Base exception for storage provider failures."""


class TransientLockError(ProviderError):
    """Provider-side lock contention; expected to clear after a short delay."""


class PermanentError(ProviderError):
    """Provider rejected the request (bad token, bad path, quota)."""


class MalformedResponseError(ProviderError):
    """Provider response body could not be interpreted."""


class RetriesExhaustedError(ProviderError):
    """Lock contention persisted through every allowed attempt."""

    def __init__(self, message: str, attempts: int, details: dict | None = None) -> None:
        super().__init__(message, details)
        self.attempts = attempts
