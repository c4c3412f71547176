"""Step history bookkeeping."""

from datetime import datetime, timedelta
from typing import Dict, Optional

from loguru import logger

from ..models.migration import Migration, MigrationHistory, MigrationStatus, Step
from ..store.base import JobStore


class StepRecorder:
    """Opens and closes step history records in the job store."""

    def __init__(self, store: JobStore):
        self.store = store
        self._last_stamp: Dict[int, datetime] = {}
        self.logger = logger.bind(component='StepRecorder')

    def _next_stamp(self, migration_id: int) -> datetime:
        # Keep timestamps of one migration strictly increasing.
        now = datetime.now()
        last = self._last_stamp.get(migration_id)
        if last is not None and now <= last:
            now = last + timedelta(microseconds=1)
        self._last_stamp[migration_id] = now
        return now

    def start_step(
        self, migration: Migration, step: Step, data: Optional[str] = None
    ) -> MigrationHistory:
        """Persist a RUNNING record for a step that is about to start.

        Args:
            migration: Owning migration
            step: Step kind
            data: Diagnostic data, e.g. the URL or pattern involved

        Returns:
            The persisted record
        """
        history = MigrationHistory(
            migration_id=migration.id,
            step=step,
            status=MigrationStatus.RUNNING,
            date=self._next_stamp(migration.id),
            data=data,
        )
        history = self.store.save_history(history)
        self.logger.info(f'Migration {migration.id}: {step.value} started ({data})')
        return history

    def end_step(self, history: MigrationHistory) -> None:
        """Mark a record DONE."""
        self._close(history, MigrationStatus.DONE)
        self.logger.info(f'Migration {history.migration_id}: {history.step.value} done')

    def fail_step(self, history: MigrationHistory) -> None:
        """Mark a record FAILED; records already closed are left alone."""
        if history.is_terminal:
            return
        self._close(history, MigrationStatus.FAILED)
        self.logger.error(
            f'Migration {history.migration_id}: {history.step.value} failed'
        )

    def forget(self, migration_id: int) -> None:
        """Drop timestamp bookkeeping for a finished migration."""
        self._last_stamp.pop(migration_id, None)

    def _close(self, history: MigrationHistory, status: MigrationStatus) -> None:
        # The caller's record only changes once the store has accepted it.
        closed = history.copy()
        closed.transition(status)
        self.store.save_history(closed)
        history.status = closed.status
