"""Job store interface."""

from abc import ABC, abstractmethod
from typing import List, Optional

from ..models.migration import Migration, MigrationHistory, MigrationStatus


class JobStore(ABC):
    """Durable storage for migrations and their step history.

    Every save is an independent upsert; nothing spans more than one record.
    """

    @abstractmethod
    def find_by_id(self, migration_id: int) -> Migration:
        """Load a migration.

        Args:
            migration_id: Migration ID

        Returns:
            Stored migration

        Raises:
            MigrationNotFoundError: If no migration has this ID
        """
        pass

    @abstractmethod
    def save_migration(self, migration: Migration) -> Migration:
        """Insert or update a migration, assigning an ID when it has none.

        Args:
            migration: Migration to persist

        Returns:
            The persisted migration
        """
        pass

    @abstractmethod
    def save_history(self, history: MigrationHistory) -> MigrationHistory:
        """Insert or update a step history record.

        Args:
            history: History record to persist

        Returns:
            The persisted record, with its ID assigned
        """
        pass

    @abstractmethod
    def history_for(self, migration_id: int) -> List[MigrationHistory]:
        """History records of a migration, oldest first."""
        pass

    @abstractmethod
    def list_migrations(
        self, status: Optional[MigrationStatus] = None
    ) -> List[Migration]:
        """All migrations ordered by ID, optionally filtered by status."""
        pass
