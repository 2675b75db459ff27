"""
passbox - Error kinds

Every failure the user can see is one of these. cli.main() turns them into
a one-line message and a non-zero exit code.
"""

from typing import Optional


class PassboxError(Exception):
    """Base class: a message for the user plus the process exit code."""

    exit_code = 1

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class MissingDependency(PassboxError):
    """The cipher backend cannot do what we need (checked at startup)."""


class Unauthorized(PassboxError):
    """Wrong passphrase, wrong key, or a corrupt backing file."""


class NotFound(PassboxError):
    """No record (or field) matches, or the store does not exist yet."""


class InvalidInput(PassboxError):
    """Bad command-line arguments or bad interactive input."""

    def __init__(self, message: str, usage: Optional[str] = None):
        super().__init__(message)
        self.usage = usage


class UserAborted(PassboxError):
    """The user declined a confirmation. Not an error, but still exit 1."""

    def __init__(self, message: str = "Aborted."):
        super().__init__(message)
