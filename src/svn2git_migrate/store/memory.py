"""In-memory job store."""

import itertools
import threading
from typing import Dict, List, Optional

from ..errors import MigrationNotFoundError
from ..models.migration import Migration, MigrationHistory, MigrationStatus
from .base import JobStore


class InMemoryJobStore(JobStore):
    """Job store kept in process memory.

    Records are copied on the way in and out, so a caller only changes stored
    state by saving.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._migrations: Dict[int, Migration] = {}
        self._history: Dict[int, MigrationHistory] = {}
        self._migration_ids = itertools.count(1)
        self._history_ids = itertools.count(1)

    def find_by_id(self, migration_id: int) -> Migration:
        with self._lock:
            migration = self._migrations.get(migration_id)
            if migration is None:
                raise MigrationNotFoundError(migration_id)
            return migration.copy(deep=True)

    def save_migration(self, migration: Migration) -> Migration:
        with self._lock:
            if migration.id is None:
                migration.id = next(self._migration_ids)
            self._migrations[migration.id] = migration.copy(deep=True)
            return migration

    def save_history(self, history: MigrationHistory) -> MigrationHistory:
        with self._lock:
            if history.migration_id not in self._migrations:
                raise MigrationNotFoundError(history.migration_id)
            if history.id is None:
                history.id = next(self._history_ids)
            self._history[history.id] = history.copy(deep=True)
            return history

    def history_for(self, migration_id: int) -> List[MigrationHistory]:
        with self._lock:
            return [
                h.copy(deep=True)
                for _, h in sorted(self._history.items())
                if h.migration_id == migration_id
            ]

    def list_migrations(
        self, status: Optional[MigrationStatus] = None
    ) -> List[Migration]:
        with self._lock:
            return [
                m.copy(deep=True)
                for _, m in sorted(self._migrations.items())
                if status is None or m.status == status
            ]
