"""
nomad_bootstrap/errors.py

Exception hierarchy shared by every stage of a bootstrap run. The CLIs map
each class to an exit status; nothing inside the library calls sys.exit.
"""

from __future__ import annotations

from typing import Optional


class BootstrapError(Exception):
    """Base class for every fatal condition raised by nomad_bootstrap."""

    exit_code: int = 1


class InputError(BootstrapError):
    """A missing, malformed, or contradictory user-supplied value."""

    exit_code = 2


class MissingDependencyError(BootstrapError):
    """A required external tool or service is not available on this host."""


class MetadataUnavailable(MissingDependencyError):
    """The EC2 instance metadata service could not answer a lookup.

    Attributes:
        path (str): The metadata path that failed.
    """

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Instance metadata lookup for '{path}' failed: {reason}")
        self.path = path


class ConfigValidationError(BootstrapError):
    """A rendered document failed to parse back into its model."""


class RetryExhausted(BootstrapError):
    """An operation failed on every allowed attempt.

    Attributes:
        description (str): Human-readable name of the operation.
        attempts (int): How many attempts were made.
        last_error (Optional[BaseException]): The final failure.
    """

    def __init__(
        self,
        description: str,
        attempts: int,
        last_error: Optional[BaseException] = None,
    ) -> None:
        super().__init__(
            f"{description} failed after {attempts} attempt(s): {last_error}"
        )
        self.description = description
        self.attempts = attempts
        self.last_error = last_error


class PostConditionError(BootstrapError):
    """The install finished every step but its result is not usable."""

    exit_code = 3
