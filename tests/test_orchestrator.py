"""Tests for the migration orchestrator."""

import base64

import pytest

from svn2git_migrate.api.exceptions import GitLabConflictError, GitLabNotFoundError
from svn2git_migrate.config.config import Config
from svn2git_migrate.errors import InvalidTransitionError, MigrationNotFoundError
from svn2git_migrate.migration.orchestrator import MigrationOrchestrator, WorkingPaths
from svn2git_migrate.models.migration import Migration, MigrationStatus, Step
from svn2git_migrate.store import InMemoryJobStore

from fakes import FakeProvisioner, ScriptedRunner, is_push


class TestMigrationOrchestrator:
    """Test step sequencing, history and failure handling."""

    def setup_method(self):
        """Set up test fixtures."""
        self.store = InMemoryJobStore()
        self.migration = self.store.save_migration(
            Migration(
                svn_group='legacy/app',
                svn_project='app',
                gitlab_group='newhost/app',
                user='alice',
                token='s3cr3t-token',
            )
        )

    def _config(self, tmp_path, **git):
        return Config(
            svn={'url': 'https://svn.example.com/svn'},
            gitlab={'url': 'https://gitlab.example.com', 'token': 'api-token'},
            git=dict(temp_dir=str(tmp_path), **git),
        )

    def _orchestrator(self, tmp_path, provisioner=None, runner=None, **git):
        self.provisioner = provisioner or FakeProvisioner()
        self.runner = runner or ScriptedRunner()
        return MigrationOrchestrator(
            self.store, self.provisioner, self.runner, self._config(tmp_path, **git)
        )

    def _history(self):
        return self.store.history_for(self.migration.id)

    @pytest.mark.asyncio
    async def test_successful_migration(self, tmp_path):
        orchestrator = self._orchestrator(tmp_path)

        outcome = await orchestrator.run(self.migration.id)

        assert outcome.success
        stored = self.store.find_by_id(self.migration.id)
        assert stored.status == MigrationStatus.DONE
        assert stored.destination_project_id == 42

        history = self._history()
        assert [h.step for h in history] == Step.ordered()
        assert all(h.status == MigrationStatus.DONE for h in history)
        dates = [h.date for h in history]
        assert all(a < b for a, b in zip(dates, dates[1:]))
        assert (tmp_path / str(self.migration.id) / 'legacy' / 'app' / '.git').is_dir()

    @pytest.mark.asyncio
    async def test_step_data(self, tmp_path):
        orchestrator = self._orchestrator(tmp_path)

        await orchestrator.run(self.migration.id)

        assert [h.data for h in self._history()] == [
            'https://gitlab.example.com/newhost/app',
            'https://svn.example.com/svn/legacy/app',
            '*.zip',
            'trunk -> master',
        ]

    @pytest.mark.asyncio
    async def test_command_sequence(self, tmp_path):
        orchestrator = self._orchestrator(tmp_path)

        await orchestrator.run(self.migration.id)

        root = tmp_path / str(self.migration.id)
        work_tree = root / 'legacy' / 'app'
        destination = 'https://gitlab.example.com/newhost/app/app.git'
        header = base64.b64encode(b'alice:s3cr3t-token').decode()
        secrets = ['s3cr3t-token', header]
        auth = {
            'GIT_CONFIG_COUNT': '1',
            'GIT_CONFIG_KEY_0': 'http.extraHeader',
            'GIT_CONFIG_VALUE_0': f'Authorization: Basic {header}',
        }

        assert self.runner.calls == [
            (
                str(root),
                ['git', 'clone', '--mirror', destination, str(root / 'newhost' / 'app')],
                secrets,
                auth,
            ),
            (
                str(root),
                [
                    'git', 'svn', 'clone',
                    '--trunk=app/trunk', '--branches=app/branches', '--tags=app/tags',
                    '--prefix=svn/',
                    'https://svn.example.com/svn/legacy/app', str(work_tree),
                ],
                [],
                {},
            ),
            (
                str(root),
                ['bfg', '--delete-files', '*.zip', '--no-blob-protection', str(work_tree / '.git')],
                [],
                {},
            ),
            (str(work_tree / '.git'), ['git', 'reflog', 'expire', '--expire=now', '--all'], [], {}),
            (str(work_tree / '.git'), ['git', 'gc', '--prune=now', '--aggressive'], [], {}),
            (str(work_tree), ['git', 'remote', 'add', 'origin', destination], [], {}),
            (str(work_tree), ['git', 'remote', 'add', 'gitlab', destination], [], {}),
            (
                str(work_tree),
                ['git', 'push', 'origin', 'HEAD:refs/heads/master'],
                secrets,
                auth,
            ),
            (
                str(work_tree),
                [
                    'git', 'push', 'origin',
                    'refs/remotes/svn/*:refs/heads/*',
                    '^refs/remotes/svn/tags/*',
                    '^refs/remotes/svn/trunk',
                ],
                secrets,
                auth,
            ),
            (
                str(work_tree),
                ['git', 'push', 'origin', 'refs/remotes/svn/tags/*:refs/tags/*'],
                secrets,
                auth,
            ),
        ]

    @pytest.mark.asyncio
    async def test_credentials_never_on_command_line(self, tmp_path):
        orchestrator = self._orchestrator(tmp_path)

        await orchestrator.run(self.migration.id)

        header = base64.b64encode(b'alice:s3cr3t-token').decode()
        for command in self.runner.commands():
            assert not any('s3cr3t-token' in arg or header in arg for arg in command)

    @pytest.mark.asyncio
    async def test_remotes_never_carry_credentials(self, tmp_path):
        orchestrator = self._orchestrator(tmp_path)

        await orchestrator.run(self.migration.id)

        for command in self.runner.commands():
            if 'remote' in command:
                assert not any('s3cr3t-token' in arg for arg in command)

    @pytest.mark.asyncio
    async def test_push_failure(self, tmp_path):
        orchestrator = self._orchestrator(tmp_path, runner=ScriptedRunner(fail_on=is_push))

        outcome = await orchestrator.run(self.migration.id)

        assert not outcome.success
        assert outcome.failed_step == Step.DESTINATION_PUSH
        assert self.store.find_by_id(self.migration.id).status == MigrationStatus.FAILED
        history = self._history()
        assert len(history) == 4
        assert [h.status for h in history] == [
            MigrationStatus.DONE,
            MigrationStatus.DONE,
            MigrationStatus.DONE,
            MigrationStatus.FAILED,
        ]
        # Nothing else is pushed once the mainline push failed
        assert len([c for c in self.runner.commands() if is_push(c)]) == 1

    @pytest.mark.asyncio
    async def test_project_already_exists(self, tmp_path):
        provisioner = FakeProvisioner(
            error=GitLabConflictError('Resource already exists', status_code=400)
        )
        orchestrator = self._orchestrator(tmp_path, provisioner=provisioner)

        outcome = await orchestrator.run(self.migration.id)

        assert outcome.failed_step == Step.PROJECT_CREATION
        assert 'already exists' in outcome.error
        assert self.store.find_by_id(self.migration.id).status == MigrationStatus.FAILED
        history = self._history()
        assert len(history) == 1
        assert history[0].step == Step.PROJECT_CREATION
        assert history[0].status == MigrationStatus.FAILED
        assert self.runner.calls == []
        assert not (tmp_path / str(self.migration.id)).exists()

    @pytest.mark.asyncio
    async def test_missing_group(self, tmp_path):
        provisioner = FakeProvisioner()

        async def missing(group_path):
            raise GitLabNotFoundError('Resource not found', status_code=404)

        provisioner.resolve_group = missing
        orchestrator = self._orchestrator(tmp_path, provisioner=provisioner)

        outcome = await orchestrator.run(self.migration.id)

        assert outcome.failed_step == Step.PROJECT_CREATION

    @pytest.mark.parametrize(
        'fail_on, failed_step',
        [
            (lambda c: c[:3] == ['git', 'svn', 'clone'], Step.SOURCE_CHECKOUT),
            (lambda c: '--mirror' in c, Step.SOURCE_CHECKOUT),
            (lambda c: c[0] == 'bfg', Step.HISTORY_CLEAN),
            (lambda c: 'gc' in c, Step.HISTORY_CLEAN),
            (lambda c: 'remote' in c, Step.DESTINATION_PUSH),
        ],
    )
    @pytest.mark.asyncio
    async def test_failure_stops_later_steps(self, tmp_path, fail_on, failed_step):
        orchestrator = self._orchestrator(tmp_path, runner=ScriptedRunner(fail_on=fail_on))

        outcome = await orchestrator.run(self.migration.id)

        assert outcome.failed_step == failed_step
        history = self._history()
        k = Step.ordered().index(failed_step)
        assert [h.step for h in history] == Step.ordered()[: k + 1]
        assert all(h.status == MigrationStatus.DONE for h in history[:k])
        assert history[k].status == MigrationStatus.FAILED

    @pytest.mark.asyncio
    async def test_existing_scratch_root_fails_checkout(self, tmp_path):
        (tmp_path / str(self.migration.id)).mkdir()
        orchestrator = self._orchestrator(tmp_path)

        outcome = await orchestrator.run(self.migration.id)

        assert outcome.failed_step == Step.SOURCE_CHECKOUT
        assert 'FileExistsError' in outcome.error
        assert self.runner.calls == []

    @pytest.mark.asyncio
    async def test_paths_outside_job_directory_fail_checkout(self, tmp_path):
        migration = self.store.find_by_id(self.migration.id)
        migration.svn_group = '../2/legacy'
        self.store.save_migration(migration)
        orchestrator = self._orchestrator(tmp_path)

        outcome = await orchestrator.run(self.migration.id)

        assert outcome.failed_step == Step.SOURCE_CHECKOUT
        assert self.runner.calls == []
        assert list(tmp_path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_store_rejecting_failed_status(self, tmp_path):
        orchestrator = self._orchestrator(tmp_path, runner=ScriptedRunner(fail_on=is_push))
        save_migration = self.store.save_migration

        def reject_failed(migration):
            if migration.status == MigrationStatus.FAILED:
                raise OSError('disk full')
            return save_migration(migration)

        self.store.save_migration = reject_failed

        outcome = await orchestrator.run(self.migration.id)

        assert outcome.status == MigrationStatus.FAILED
        assert outcome.failed_step == Step.DESTINATION_PUSH
        assert self.store.find_by_id(self.migration.id).status == MigrationStatus.RUNNING
        assert self._history()[-1].status == MigrationStatus.FAILED

    @pytest.mark.asyncio
    async def test_unknown_migration(self, tmp_path):
        orchestrator = self._orchestrator(tmp_path)

        with pytest.raises(MigrationNotFoundError):
            await orchestrator.run(999)

        assert self.store.find_by_id(self.migration.id).status == MigrationStatus.PENDING

    @pytest.mark.asyncio
    async def test_finished_migration_not_rerun(self, tmp_path):
        orchestrator = self._orchestrator(tmp_path)
        await orchestrator.run(self.migration.id)
        calls = len(self.runner.calls)

        with pytest.raises(InvalidTransitionError):
            await orchestrator.run(self.migration.id)

        assert len(self.runner.calls) == calls
        assert len(self._history()) == len(Step.ordered())
        assert self.store.find_by_id(self.migration.id).status == MigrationStatus.DONE

    @pytest.mark.asyncio
    async def test_cleanup_temp(self, tmp_path):
        orchestrator = self._orchestrator(tmp_path, cleanup_temp=True)

        outcome = await orchestrator.run(self.migration.id)

        assert outcome.success
        assert not (tmp_path / str(self.migration.id)).exists()

    @pytest.mark.asyncio
    async def test_cleanup_temp_after_failure(self, tmp_path):
        orchestrator = self._orchestrator(
            tmp_path, runner=ScriptedRunner(fail_on=is_push), cleanup_temp=True
        )

        await orchestrator.run(self.migration.id)

        assert not (tmp_path / str(self.migration.id)).exists()

    @pytest.mark.asyncio
    async def test_configured_branches_and_aliases(self, tmp_path):
        orchestrator = self._orchestrator(
            tmp_path,
            remote_aliases=['upstream'],
            default_branch='main',
            clean_pattern='*.jar',
            bfg_command=['java', '-jar', 'bfg.jar'],
        )

        await orchestrator.run(self.migration.id)

        commands = self.runner.commands()
        assert ['java', '-jar', 'bfg.jar', '--delete-files', '*.jar'] == commands[2][:5]
        assert [c for c in commands if 'remote' in c] == [
            ['git', 'remote', 'add', 'upstream', 'https://gitlab.example.com/newhost/app/app.git']
        ]
        assert commands[-3][-2:] == ['upstream', 'HEAD:refs/heads/main']
        assert commands[-2][2] == 'upstream'
        assert commands[-1][2] == 'upstream'
        assert self._history()[-1].data == 'trunk -> main'


class TestWorkingPaths:
    def test_distinct_jobs_never_share_root(self, tmp_path):
        a = Migration(id=1, svn_group='g', svn_project='p', gitlab_group='d', user='u')
        b = a.copy(update={'id': 2})

        assert WorkingPaths.for_migration(tmp_path, a).root != WorkingPaths.for_migration(tmp_path, b).root

    def test_layout(self, tmp_path):
        migration = Migration(id=5, svn_group='legacy/app', svn_project='p', gitlab_group='new', user='u')

        paths = WorkingPaths.for_migration(tmp_path, migration)

        assert paths.root == tmp_path / '5'
        assert paths.mirror == tmp_path / '5' / 'new'
        assert paths.work_tree == tmp_path / '5' / 'legacy' / 'app'
        assert paths.git_dir == tmp_path / '5' / 'legacy' / 'app' / '.git'
        assert paths.created is False

    def test_contained_paths_accepted(self, tmp_path):
        migration = Migration(id=5, svn_group='legacy/app', svn_project='p', gitlab_group='new', user='u')

        WorkingPaths.for_migration(tmp_path, migration).check_contained()

    def test_escaping_paths_rejected(self, tmp_path):
        migration = Migration(id=1, svn_group='g', svn_project='p', gitlab_group='d', user='u')
        migration.svn_group = '../2/legacy'

        with pytest.raises(ValueError):
            WorkingPaths.for_migration(tmp_path, migration).check_contained()
