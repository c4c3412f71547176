"""Tests for step history bookkeeping."""

from datetime import datetime
from unittest.mock import patch

import pytest

from svn2git_migrate.errors import InvalidTransitionError
from svn2git_migrate.migration.recorder import StepRecorder
from svn2git_migrate.models.migration import Migration, MigrationStatus, Step
from svn2git_migrate.store import InMemoryJobStore


class TestStepRecorder:
    """Test history records opened and closed around steps."""

    def setup_method(self):
        """Set up test fixtures."""
        self.store = InMemoryJobStore()
        self.migration = self.store.save_migration(
            Migration(svn_group='legacy', svn_project='core', gitlab_group='newhost', user='alice')
        )
        self.recorder = StepRecorder(self.store)

    def test_start_step_persists_running_record(self):
        history = self.recorder.start_step(self.migration, Step.PROJECT_CREATION, 'https://h/g')

        stored = self.store.history_for(self.migration.id)
        assert history.id is not None
        assert len(stored) == 1
        assert stored[0].status == MigrationStatus.RUNNING
        assert stored[0].step == Step.PROJECT_CREATION
        assert stored[0].data == 'https://h/g'

    def test_end_step(self):
        history = self.recorder.start_step(self.migration, Step.PROJECT_CREATION)

        self.recorder.end_step(history)

        assert history.status == MigrationStatus.DONE
        assert self.store.history_for(self.migration.id)[0].status == MigrationStatus.DONE

    def test_fail_step(self):
        history = self.recorder.start_step(self.migration, Step.HISTORY_CLEAN)

        self.recorder.fail_step(history)

        assert self.store.history_for(self.migration.id)[0].status == MigrationStatus.FAILED

    def test_fail_after_done_is_ignored(self):
        history = self.recorder.start_step(self.migration, Step.HISTORY_CLEAN)
        self.recorder.end_step(history)

        self.recorder.fail_step(history)

        assert self.store.history_for(self.migration.id)[0].status == MigrationStatus.DONE

    def test_timestamps_strictly_increase(self):
        frozen = datetime(2024, 1, 1, 12, 0, 0)
        with patch('svn2git_migrate.migration.recorder.datetime') as mock_datetime:
            mock_datetime.now.return_value = frozen
            for step in Step.ordered():
                self.recorder.start_step(self.migration, step)

        dates = [h.date for h in self.store.history_for(self.migration.id)]
        assert dates == sorted(dates)
        assert len(set(dates)) == len(dates)

    def test_failed_save_leaves_record_open(self):
        history = self.recorder.start_step(self.migration, Step.DESTINATION_PUSH)

        with patch.object(self.store, 'save_history', side_effect=OSError('disk full')):
            with pytest.raises(OSError):
                self.recorder.end_step(history)

        assert history.status == MigrationStatus.RUNNING
        assert self.store.history_for(self.migration.id)[0].status == MigrationStatus.RUNNING

    def test_end_step_twice_rejected(self):
        history = self.recorder.start_step(self.migration, Step.SOURCE_CHECKOUT)
        self.recorder.end_step(history)

        with pytest.raises(InvalidTransitionError):
            self.recorder.end_step(history)
