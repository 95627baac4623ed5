"""Defines exceptions for the migration process."""


class MigrationError(Exception):
    """Base exception for migration errors.

    Should be used when a migration component encounters an error
    that prevents it from continuing execution.
    """

    def __init__(self, message: str, *args: object) -> None:
        """Initialize the exception with a descriptive message.

        Args:
            message: Detailed error message
            *args: Additional positional arguments for Exception

        """
        super().__init__(message, *args)
        self.message = message


class AbortMigrationError(MigrationError):
    """Unrecoverable condition that must stop the whole import run.

    Raised by the destination layer (or by the import driver) when continuing
    would corrupt the destination or the journal. It is never swallowed by
    per-revision, per-link or per-attachment error handling.
    """
