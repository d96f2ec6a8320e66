"""
Custom exceptions for the LMS.
"""

from typing import Optional, Any, Dict


class LMSException(Exception):
    """Base exception for all LMS errors."""
    
    def __init__(self, message: str, error_code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}


class ValidationError(LMSException):
    """Raised when data validation fails."""
    pass


class InvalidTaskConfigError(ValidationError):
    """Raised when task fields are invalid or supplied for a non-task subsection."""
    pass


class AuthorizationError(LMSException):
    """Raised when access is denied."""
    pass


class ConcurrencyError(LMSException):
    """Raised when a lock cannot be acquired in time."""
    pass


class ResourceNotFoundError(LMSException):
    """Raised when a requested resource is not found."""
    pass


class DuplicateEntityError(LMSException):
    """Raised when attempting to create a duplicate entity."""
    pass


class DuplicateEmailError(DuplicateEntityError):
    """Raised when a user with the same email already exists."""
    pass


class AttemptNotAllowedError(LMSException):
    """Raised when a task attempt is made after the student passed or ran out of attempts."""
    pass


class PersistenceError(LMSException):
    """Raised when persistence operations fail."""
    pass


class ConfigurationError(LMSException):
    """Raised when configuration is invalid."""
    pass
