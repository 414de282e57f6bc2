"""Domain exceptions raised by the session, sync and backup layers."""

from __future__ import annotations


class AutoCarsError(Exception):
    """Base class for recoverable, user-facing back-office errors."""


class ValidationError(AutoCarsError, ValueError):
    """Raised before any I/O when input fields are missing or inconsistent."""


class AdmissionError(AutoCarsError):
    """Raised when a registration admission code is unknown, used or revoked."""


class DuplicateEmailError(AutoCarsError):
    """Raised when registering an e-mail that already has an account.

    Callers may retry the same credentials as a login.
    """

    def __init__(self, email: str) -> None:
        super().__init__(f"An account for {email} already exists.")
        self.email = email


class SessionRequiredError(AutoCarsError):
    """Raised when a data operation runs without an established session."""
