"""Migration orchestrator driving one job through its steps."""

import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from loguru import logger

from ..api.provisioner import RemoteProjectProvisioner
from ..config.config import Config
from ..errors import MigrationError, TransportError, UnclassifiedError
from ..git import commands
from ..git.runner import CommandRunner
from ..models.migration import (
    Migration,
    MigrationStatus,
    Step,
    check_transition,
)
from ..store.base import JobStore
from .recorder import StepRecorder


@dataclass
class WorkingPaths:
    """Filesystem locations owned by one job."""

    root: Path
    mirror: Path
    work_tree: Path
    created: bool = False

    @property
    def git_dir(self) -> Path:
        return self.work_tree / '.git'

    @classmethod
    def for_migration(cls, scratch_root: Path, migration: Migration) -> 'WorkingPaths':
        """Derive the job's paths; distinct job IDs never share a root."""
        root = Path(scratch_root) / str(migration.id)
        return cls(
            root=root,
            mirror=root / migration.gitlab_group,
            work_tree=root / migration.svn_group,
        )

    def check_contained(self) -> None:
        """Raise ValueError unless the mirror and work tree lie inside the root."""
        root = self.root.resolve()
        for path in (self.mirror, self.work_tree):
            if root not in path.resolve().parents:
                raise ValueError(f'Path {path} escapes job directory {self.root}')


@dataclass
class StepResult:
    """Outcome of one step."""

    step: Step
    success: bool
    error: Optional[MigrationError] = None


@dataclass
class MigrationOutcome:
    """Final state of a job run."""

    migration_id: int
    status: MigrationStatus
    failed_step: Optional[Step] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == MigrationStatus.DONE


StepAction = Callable[[Migration, WorkingPaths], Awaitable[None]]


class MigrationOrchestrator:
    """Runs the project creation, checkout, cleaning and push steps of a job.

    Steps run strictly in order. The first failing step closes its history
    record as FAILED, fails the job and skips every later step; completed steps
    are not undone.
    """

    def __init__(
        self,
        store: JobStore,
        provisioner: RemoteProjectProvisioner,
        runner: CommandRunner,
        config: Config,
    ):
        """Initialize migration orchestrator.

        Args:
            store: Job and history store
            provisioner: Destination project provisioner
            runner: External command runner
            config: Application configuration
        """
        self.store = store
        self.provisioner = provisioner
        self.runner = runner
        self.config = config
        self.recorder = StepRecorder(store)
        self.logger = logger.bind(component='MigrationOrchestrator')

    async def run(self, migration_id: int) -> MigrationOutcome:
        """Execute a migration job.

        Args:
            migration_id: Migration ID

        Returns:
            Final outcome of the job

        Raises:
            MigrationNotFoundError: If the job does not exist; it is left untouched
            InvalidTransitionError: If the job is not PENDING
        """
        migration = self.store.find_by_id(migration_id)
        paths = WorkingPaths.for_migration(self.config.scratch_root, migration)

        self._set_status(migration, MigrationStatus.RUNNING)
        self.logger.info(
            f'Starting migration {migration.id}: '
            f'{migration.svn_group}/{migration.svn_project} -> {migration.gitlab_group}'
        )

        try:
            for step, data, action in self._plan(migration):
                result = await self._execute_step(migration, paths, step, data, action)
                if not result.success:
                    return self._fail(migration, result.step, result.error)

            try:
                self._set_status(migration, MigrationStatus.DONE)
            except Exception as e:
                return self._fail(migration, None, UnclassifiedError(e))

            self.logger.info(f'Migration {migration.id} completed successfully')
            return MigrationOutcome(migration.id, MigrationStatus.DONE)
        finally:
            self.recorder.forget(migration.id)
            if self.config.git.cleanup_temp and paths.created:
                self._cleanup(paths.root)

    def _plan(self, migration: Migration) -> List[Tuple[Step, str, StepAction]]:
        """Steps with their diagnostic data, in execution order."""
        git = self.config.git
        plan = {
            Step.PROJECT_CREATION: (
                self.provisioner.group_url(migration.gitlab_group),
                self._create_project,
            ),
            Step.SOURCE_CHECKOUT: (
                f'{self.config.svn.url}/{migration.svn_group}',
                self._checkout,
            ),
            Step.HISTORY_CLEAN: (git.clean_pattern, self._clean_history),
            Step.DESTINATION_PUSH: (
                f'{git.source_branch} -> {git.default_branch}',
                self._push,
            ),
        }
        return [(step, *plan[step]) for step in Step.ordered()]

    async def _execute_step(
        self,
        migration: Migration,
        paths: WorkingPaths,
        step: Step,
        data: str,
        action: StepAction,
    ) -> StepResult:
        """Run one step inside its history record."""
        history = None
        try:
            history = self.recorder.start_step(migration, step, data)
            await action(migration, paths)
            self.recorder.end_step(history)
            return StepResult(step, True)
        except MigrationError as e:
            error = e
        except Exception as e:
            error = UnclassifiedError(e)

        self.logger.error(f'Migration {migration.id}: {step.value} failed: {error}')
        if history is not None:
            try:
                self.recorder.fail_step(history)
            except Exception as e:
                self.logger.error(
                    f'Migration {migration.id}: could not record failure of '
                    f'{step.value}: {e}'
                )
        return StepResult(step, False, error)

    def _fail(
        self,
        migration: Migration,
        step: Optional[Step],
        error: Optional[MigrationError],
    ) -> MigrationOutcome:
        try:
            self._set_status(migration, MigrationStatus.FAILED)
        except Exception as e:
            # Left RUNNING in the store until a reconcile sweep fails it.
            self.logger.error(f'Migration {migration.id}: could not record failure: {e}')
        self.logger.error(f'Migration {migration.id} failed')
        return MigrationOutcome(
            migration.id,
            MigrationStatus.FAILED,
            failed_step=step,
            error=str(error) if error else None,
        )

    def _set_status(self, migration: Migration, status: MigrationStatus) -> None:
        # Local status follows the store, never runs ahead of it.
        check_transition(migration.status, status)
        self.store.save_migration(migration.copy(update={'status': status}))
        migration.status = status

    def _secrets(self, migration: Migration) -> List[Optional[str]]:
        return [migration.token, commands.basic_credentials(migration.user, migration.token)]

    def _auth(self, migration: Migration) -> Dict[str, str]:
        return commands.auth_env(
            commands.basic_credentials(migration.user, migration.token)
        )

    # Steps

    async def _create_project(self, migration: Migration, paths: WorkingPaths) -> None:
        group = await self.provisioner.resolve_group(migration.gitlab_group)
        project = await self.provisioner.create_project(group, migration.svn_project)
        self.store.save_migration(
            migration.copy(update={'destination_project_id': project.id})
        )
        migration.destination_project_id = project.id

    async def _checkout(self, migration: Migration, paths: WorkingPaths) -> None:
        """Mirror the empty destination, then import the Subversion history."""
        paths.check_contained()
        paths.root.mkdir(parents=True)
        paths.created = True
        self.logger.info(f'Created working directory: {paths.root}')

        destination = self.provisioner.project_url(
            migration.gitlab_group, migration.svn_project
        )
        paths.mirror.parent.mkdir(parents=True, exist_ok=True)
        await self.runner.check(
            str(paths.root),
            commands.mirror_clone(destination, paths.mirror),
            redact=self._secrets(migration),
            env=self._auth(migration),
        )

        paths.work_tree.parent.mkdir(parents=True, exist_ok=True)
        await self.runner.check(
            str(paths.root),
            commands.svn_clone(
                self.config.svn.url,
                migration.svn_group,
                migration.svn_project,
                paths.work_tree,
                username=self.config.svn.username,
            ),
        )

    async def _clean_history(self, migration: Migration, paths: WorkingPaths) -> None:
        """Strip matching blobs from every commit and drop the old objects."""
        git = self.config.git
        await self.runner.check(
            str(paths.root),
            commands.delete_files(git.bfg_command, git.clean_pattern, paths.git_dir),
        )
        await self.runner.check(str(paths.git_dir), commands.reflog_expire())
        await self.runner.check(str(paths.git_dir), commands.gc_prune())

    async def _push(self, migration: Migration, paths: WorkingPaths) -> None:
        """Register the destination remotes and push the rewritten history.

        The mainline goes out as the default branch, the other Subversion
        branches under their own names, then the Subversion tags as git tags.
        """
        git = self.config.git
        destination = self.provisioner.project_url(
            migration.gitlab_group, migration.svn_project
        )
        for alias in git.remote_aliases:
            await self.runner.check(
                str(paths.work_tree), commands.remote_add(alias, destination)
            )

        remote = git.remote_aliases[0]
        pushes = [
            commands.push_branch(remote, git.default_branch),
            commands.push_svn_branches(remote),
            commands.push_svn_tags(remote),
        ]
        for push in pushes:
            await self.runner.check(
                str(paths.work_tree),
                push,
                redact=self._secrets(migration),
                error_cls=TransportError,
                env=self._auth(migration),
            )

    def _cleanup(self, root: Path) -> None:
        try:
            shutil.rmtree(root)
            self.logger.debug(f'Cleaned up working directory: {root}')
        except OSError as e:
            self.logger.warning(f'Failed to clean up working directory {root}: {e}')
