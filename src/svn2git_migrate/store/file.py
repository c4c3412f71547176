"""Job store backed by one JSON document per migration."""

import json
import os
import tempfile
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional

from loguru import logger
from pydantic import BaseModel, Field

from ..errors import MigrationNotFoundError
from ..models.migration import Migration, MigrationHistory, MigrationStatus
from .base import JobStore


def _encode(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f'Cannot serialize {type(value).__name__}')


class JobDocument(BaseModel):
    """On-disk layout of a migration and its history."""

    migration: Migration = Field(..., description='Migration job')
    history: List[MigrationHistory] = Field(
        default_factory=list, description='Step history, oldest first'
    )


class JsonFileJobStore(JobStore):
    """Job store writing `<root>/<id>.json` files.

    Writes go through a temporary file and `os.replace`, so a reader never sees
    a half-written document. Safe for threads of one process, not for several
    processes writing the same job.
    """

    def __init__(self, root: str):
        """Initialize file store.

        Args:
            root: Directory holding the job documents
        """
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self.logger = logger.bind(component='JsonFileJobStore')

    def _path(self, migration_id: int) -> Path:
        return self.root / f'{migration_id}.json'

    def _read(self, migration_id: int) -> JobDocument:
        path = self._path(migration_id)
        if not path.exists():
            raise MigrationNotFoundError(migration_id)
        return JobDocument.parse_raw(path.read_text(encoding='utf-8'))

    def _write(self, document: JobDocument) -> None:
        path = self._path(document.migration.id)
        fd, tmp_path = tempfile.mkstemp(dir=self.root, suffix='.tmp')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(document.dict(), f, indent=2, default=_encode)
            os.replace(tmp_path, path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def _ids(self) -> List[int]:
        return sorted(int(p.stem) for p in self.root.glob('*.json') if p.stem.isdigit())

    def find_by_id(self, migration_id: int) -> Migration:
        with self._lock:
            return self._read(migration_id).migration

    def save_migration(self, migration: Migration) -> Migration:
        with self._lock:
            if migration.id is None:
                ids = self._ids()
                migration.id = (ids[-1] + 1) if ids else 1
                document = JobDocument(migration=migration)
                self.logger.debug(f'Created job document {self._path(migration.id)}')
            else:
                try:
                    document = self._read(migration.id)
                    document.migration = migration
                except MigrationNotFoundError:
                    document = JobDocument(migration=migration)
            self._write(document)
            return migration

    def save_history(self, history: MigrationHistory) -> MigrationHistory:
        with self._lock:
            document = self._read(history.migration_id)
            if history.id is None:
                history.id = max((h.id for h in document.history), default=0) + 1
            others = [h for h in document.history if h.id != history.id]
            document.history = sorted(others + [history], key=lambda h: h.id)
            self._write(document)
            return history

    def history_for(self, migration_id: int) -> List[MigrationHistory]:
        with self._lock:
            return sorted(self._read(migration_id).history, key=lambda h: h.id)

    def list_migrations(
        self, status: Optional[MigrationStatus] = None
    ) -> List[Migration]:
        with self._lock:
            migrations = [self._read(i).migration for i in self._ids()]
        return [m for m in migrations if status is None or m.status == status]
