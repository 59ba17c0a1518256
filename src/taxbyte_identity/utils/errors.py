"""Exceptions for the TaxByte identity core.

This module provides structured error handling with specific exception types
for different failure scenarios. All exceptions inherit from TaxbyteError.
"""
from typing import Optional


class TaxbyteError(Exception):
    """Base exception for all taxbyte-identity errors.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format the error message."""
        return self.message


class ConfigurationError(TaxbyteError):
    """Raised at startup when settings are missing or inconsistent."""
    pass


class RepositoryError(TaxbyteError):
    """Raised when the durable store cannot be read or written."""
    pass


class ValidationError(TaxbyteError):
    """Raised for malformed caller input (email shape, password policy, ...).

    Attributes:
        field: Name of the offending input field, if known.
    """

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        self.field = field
        super().__init__(message)

    def format_message(self) -> str:
        if self.field:
            return f"{self.message} (field: {self.field})"
        return self.message


# Authentication


class AuthenticationError(TaxbyteError):
    """Base class for login and session failures."""
    pass


class InvalidCredentials(AuthenticationError):
    """Unknown email or wrong password. The two cases are indistinguishable."""

    def __init__(self, message: str = "Invalid email or password") -> None:
        super().__init__(message)


class SessionExpired(AuthenticationError):
    """Session is missing, revoked or past its expiry."""

    def __init__(self, message: str = "Invalid or expired session") -> None:
        super().__init__(message)


class EmailAlreadyExists(AuthenticationError):
    """A non-deleted user already owns the email address."""

    def __init__(self, message: str = "Email already exists") -> None:
        super().__init__(message)


class RateLimited(AuthenticationError):
    """Too many failed login attempts for the email or the source IP.

    Attributes:
        retry_after_seconds: Hint for when the caller may try again.
    """

    def __init__(self, retry_after_seconds: int) -> None:
        self.retry_after_seconds = retry_after_seconds
        super().__init__(
            f"Too many login attempts, try again in {retry_after_seconds} seconds"
        )


class PasswordHashError(TaxbyteError):
    """Raised when hashing itself fails."""
    pass


class InvalidPasswordHash(PasswordHashError):
    """Stored hash cannot be parsed. Indicates corruption or misconfiguration."""

    def __init__(self, message: str = "Stored password hash is malformed") -> None:
        super().__init__(message)


# OAuth


class OAuthError(TaxbyteError):
    """Base class for connection failures that require restarting the flow."""
    pass


class StateMismatch(OAuthError):
    """OAuth state is unknown, already consumed or expired."""

    def __init__(self, message: str = "Invalid or expired OAuth state parameter") -> None:
        super().__init__(message)


class ExchangeFailed(OAuthError):
    """The provider rejected the exchange or refresh, or could not be reached."""
    pass


class DecryptError(OAuthError):
    """Envelope failed authentication: tampered, truncated or wrong key.

    Never treat this as "not connected"; it signals key rotation or corruption.
    """

    def __init__(self, message: str = "Failed to decrypt secret envelope") -> None:
        super().__init__(message)


class NotConnected(OAuthError):
    """The company has no stored Google Drive connection."""

    def __init__(self, company_id: Optional[str] = None) -> None:
        self.company_id = company_id
        super().__init__("Google Drive is not connected")

    def format_message(self) -> str:
        if self.company_id:
            return f"{self.message} (company: {self.company_id})"
        return self.message


# Company boundary


class CompanyError(TaxbyteError):
    """Base class for company lookup and authorization failures."""
    pass


class CompanyNotFound(CompanyError):
    """Raised when the company record does not exist."""

    def __init__(self, company_id: str) -> None:
        self.company_id = company_id
        super().__init__(f"Company not found: {company_id}")


class PermissionDenied(CompanyError):
    """Raised when the user is not an owner or admin of the company."""
    pass


def format_error(action: str, error: Exception) -> str:
    """Format an error message consistently.

    Args:
        action: The action that failed (e.g., "Login", "Connect Google Drive").
        error: The exception that occurred.

    Returns:
        Formatted error string.
    """
    if isinstance(error, TaxbyteError):
        return f"{action} failed: {error.message}"
    return f"{action} failed: {str(error)}"
