"""Error taxonomy for migration jobs."""

from typing import Optional, Sequence


class MigrationError(Exception):
    """Base exception for migration errors."""


class MigrationNotFoundError(MigrationError):
    """Job identifier does not resolve in the job store."""

    def __init__(self, migration_id: int):
        super().__init__(f'Migration not found: {migration_id}')
        self.migration_id = migration_id


class RemoteApiError(MigrationError):
    """Remote hosting API call failed."""


class ProcessFailure(MigrationError):
    """External command exited non-zero, failed to spawn or timed out."""

    def __init__(
        self,
        message: str,
        command: Optional[Sequence[str]] = None,
        exit_status: Optional[int] = None,
    ):
        """Initialize process failure.

        Args:
            message: Error message
            command: Redacted command that failed
            exit_status: Exit status of the child, None when it never ran
        """
        super().__init__(message)
        self.command = list(command) if command is not None else None
        self.exit_status = exit_status


class TransportError(ProcessFailure):
    """Push to the destination failed."""


class UnclassifiedError(MigrationError):
    """Any other fault raised while a step was running."""

    def __init__(self, original: BaseException):
        super().__init__(f'{type(original).__name__}: {original}')
        self.original = original


class InvalidTransitionError(MigrationError):
    """Status transition not allowed by the job or step lifecycle."""
