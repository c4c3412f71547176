"""Migration engine - main entry point for migration operations."""

import asyncio
from datetime import datetime, timedelta
from typing import List, Optional, Set

from loguru import logger

from ..api.client import GitLabClient
from ..api.provisioner import RemoteProjectProvisioner
from ..config.config import Config
from ..git.runner import CommandRunner
from ..models.migration import Migration, MigrationStatus
from ..store.base import JobStore
from ..store.file import JsonFileJobStore
from .orchestrator import MigrationOrchestrator, MigrationOutcome


class MigrationEngine:
    """Wires the collaborators together and schedules migration jobs."""

    def __init__(
        self,
        config: Config,
        store: Optional[JobStore] = None,
        provisioner: Optional[RemoteProjectProvisioner] = None,
        runner: Optional[CommandRunner] = None,
    ):
        """Initialize migration engine.

        Args:
            config: Application configuration
            store: Job store, defaults to JSON documents under config.store.path
            provisioner: Destination provisioner, defaults to one on config.gitlab
            runner: Command runner, defaults to one honouring config.git.timeout
        """
        self.config = config
        self.logger = logger.bind(component='MigrationEngine')

        self.client = None
        if provisioner is None:
            self.client = GitLabClient(config.gitlab)
            provisioner = RemoteProjectProvisioner(self.client)

        self.store = store or JsonFileJobStore(config.store.path)
        self.provisioner = provisioner
        self.runner = runner or CommandRunner(timeout=config.git.timeout)
        self.orchestrator = MigrationOrchestrator(
            self.store, self.provisioner, self.runner, config
        )

        self._semaphore = asyncio.Semaphore(config.migration.max_workers)
        self._tasks: Set[asyncio.Task] = set()
        self._active: Set[int] = set()

    def submit(
        self,
        svn_group: str,
        svn_project: str,
        gitlab_group: str,
        user: str,
        token: Optional[str] = None,
    ) -> Migration:
        """Record a new PENDING migration job.

        Returns:
            The stored migration, with its ID assigned
        """
        migration = Migration(
            svn_group=svn_group,
            svn_project=svn_project,
            gitlab_group=gitlab_group,
            user=user,
            token=token,
        )
        migration = self.store.save_migration(migration)
        self.logger.info(
            f'Submitted migration {migration.id}: {svn_group}/{svn_project} -> {gitlab_group}'
        )
        return migration

    def start_migration(self, migration_id: int) -> asyncio.Task:
        """Schedule a job in the background and return without waiting for it.

        Must be called from a running event loop.

        Args:
            migration_id: Migration ID

        Returns:
            The scheduled task
        """
        task = asyncio.get_running_loop().create_task(self._run(migration_id))
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        self.logger.debug(f'Scheduled migration {migration_id}')
        return task

    async def _run(self, migration_id: int) -> MigrationOutcome:
        async with self._semaphore:
            self._active.add(migration_id)
            try:
                return await self.orchestrator.run(migration_id)
            finally:
                self._active.discard(migration_id)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self.logger.error(f'Migration task failed: {error}')

    async def wait(self) -> List[MigrationOutcome]:
        """Wait for every scheduled job.

        Returns:
            Outcomes of the jobs that ran; jobs that could not be loaded are left out
        """
        outcomes = []
        waited: Set[asyncio.Task] = set()
        while self._tasks - waited:
            pending = list(self._tasks - waited)
            results = await asyncio.gather(*pending, return_exceptions=True)
            waited.update(pending)
            outcomes.extend(r for r in results if isinstance(r, MigrationOutcome))
        return outcomes

    def reconcile(self, stale_after: Optional[int] = None) -> List[int]:
        """Fail jobs left RUNNING by a process that went away.

        A job is stale when its newest history record (or its submission time,
        without any record) is older than stale_after seconds. Jobs running in
        this engine are never touched.

        Args:
            stale_after: Age in seconds, defaults to config.migration.stale_after

        Returns:
            IDs of the reconciled migrations
        """
        if stale_after is None:
            stale_after = self.config.migration.stale_after
        cutoff = datetime.now() - timedelta(seconds=stale_after)

        reconciled = []
        for migration in self.store.list_migrations(MigrationStatus.RUNNING):
            if migration.id in self._active:
                continue
            history = self.store.history_for(migration.id)
            last_seen = max((h.date for h in history), default=migration.created_at)
            if last_seen >= cutoff:
                continue

            for record in history:
                if not record.is_terminal:
                    record.transition(MigrationStatus.FAILED)
                    self.store.save_history(record)
            migration.transition(MigrationStatus.FAILED)
            self.store.save_migration(migration)
            reconciled.append(migration.id)
            self.logger.warning(
                f'Migration {migration.id} marked FAILED, no progress since {last_seen}'
            )

        return reconciled

    async def check_connectivity(self) -> None:
        """Test connectivity to the destination GitLab instance.

        Raises:
            ConnectionError: If connectivity test fails
        """
        self.logger.info('Testing connectivity to GitLab instance')
        client = self.client or self.provisioner.client
        if not client.test_connection():
            raise ConnectionError('Cannot connect to GitLab instance')
        self.logger.info('Connectivity test passed')

    def close(self) -> None:
        if self.client is not None:
            self.client.close()
