"""Main CLI entry point for svn2git-migrate."""

import sys
import asyncio
from typing import List, Optional, Tuple
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .. import __version__
from ..config.config import Config
from ..errors import MigrationNotFoundError
from ..models.migration import MigrationStatus
from ..utils.logging import setup_logging
from ..migration.engine import MigrationEngine
from ..migration.orchestrator import MigrationOutcome

console = Console()

STATUS_STYLES = {
    MigrationStatus.PENDING: 'yellow',
    MigrationStatus.RUNNING: 'blue',
    MigrationStatus.DONE: 'green',
    MigrationStatus.FAILED: 'red',
}


@click.group()
@click.version_option(version=__version__, prog_name='svn2git-migrate')
@click.option(
    '--config',
    '-c',
    type=click.Path(exists=True),
    help='Path to configuration file',
)
@click.option(
    '--verbose',
    '-v',
    is_flag=True,
    help='Enable verbose logging',
)
@click.pass_context
def cli(ctx: click.Context, config: Optional[str], verbose: bool) -> None:
    """svn2git-migrate - Move Subversion projects into GitLab with their history."""
    ctx.ensure_object(dict)

    if config:
        ctx.obj['config_path'] = config
    ctx.obj['verbose'] = verbose

    # Replaced by the configured sinks once a command loads its configuration
    log_level = 'DEBUG' if verbose else 'INFO'
    setup_logging(log_level)


@cli.command()
@click.option(
    '--output',
    '-o',
    default='config.yaml',
    help='Output configuration file path',
)
@click.pass_context
def init(ctx: click.Context, output: str) -> None:
    """Initialize a new configuration file."""
    console.print(
        Panel.fit(
            '[bold green]svn2git-migrate[/bold green]\n'
            'Initializing configuration...',
            border_style='green',
        )
    )

    try:
        Config.create_template(output)

        console.print(f'[green]✓[/green] Configuration template created at: {output}')
        console.print(
            f'[yellow]Please edit {output} with your Subversion and GitLab details[/yellow]'
        )

    except Exception as e:
        console.print(f'[red]✗[/red] Failed to create configuration: {e}')
        sys.exit(1)


@cli.command()
@click.option('--svn-group', required=True, help='Source group path, e.g. legacy/app')
@click.option('--svn-project', required=True, help='Source project name')
@click.option('--gitlab-group', required=True, help='Destination group path')
@click.option('--user', required=True, help='Destination user for the push')
@click.option(
    '--token',
    envvar='SVN2GIT_PUSH_TOKEN',
    prompt=True,
    hide_input=True,
    help='Destination password or access token (env: SVN2GIT_PUSH_TOKEN)',
)
@click.pass_context
def submit(
    ctx: click.Context,
    svn_group: str,
    svn_project: str,
    gitlab_group: str,
    user: str,
    token: str,
) -> None:
    """Record a new migration job."""
    try:
        config = _load_config(ctx)
        _setup_logging_with_config(ctx, config)

        engine = MigrationEngine(config)
        try:
            migration = engine.submit(svn_group, svn_project, gitlab_group, user, token)
        finally:
            engine.close()

        console.print(f'[green]✓[/green] Migration {migration.id} submitted')

    except Exception as e:
        console.print(f'[red]✗[/red] Failed to submit migration: {e}')
        if ctx.obj.get('verbose'):
            console.print_exception()
        sys.exit(1)


@cli.command()
@click.argument('migration_ids', nargs=-1, type=int, required=True)
@click.pass_context
def run(ctx: click.Context, migration_ids: Tuple[int, ...]) -> None:
    """Run migration jobs."""
    console.print(
        Panel.fit(
            '[bold blue]svn2git-migrate[/bold blue]\n'
            f'Running {len(migration_ids)} migration(s)...',
            border_style='blue',
        )
    )

    try:
        config = _load_config(ctx)
        _setup_logging_with_config(ctx, config)

        engine = MigrationEngine(config)
        try:
            outcomes = asyncio.run(_run_migrations(engine, list(migration_ids)))
        finally:
            engine.close()

    except Exception as e:
        console.print(f'[red]✗[/red] Migration failed: {e}')
        if ctx.obj.get('verbose'):
            console.print_exception()
        sys.exit(1)

    _display_outcomes(outcomes)

    missing = sorted(set(migration_ids) - {o.migration_id for o in outcomes})
    for migration_id in missing:
        console.print(
            f'[red]✗[/red] Migration {migration_id} did not run (missing or not PENDING)'
        )
    if missing or not all(o.success for o in outcomes):
        sys.exit(1)


@cli.command()
@click.argument('migration_id', type=int, required=False)
@click.pass_context
def status(ctx: click.Context, migration_id: Optional[int]) -> None:
    """Show migration jobs."""
    try:
        config = _load_config(ctx)
        _setup_logging_with_config(ctx, config)

        engine = MigrationEngine(config)
        try:
            if migration_id is None:
                migrations = engine.store.list_migrations()
            else:
                migrations = [engine.store.find_by_id(migration_id)]
        finally:
            engine.close()

    except MigrationNotFoundError as e:
        console.print(f'[red]✗[/red] {e}')
        sys.exit(1)
    except Exception as e:
        console.print(f'[red]✗[/red] Failed to load status: {e}')
        if ctx.obj.get('verbose'):
            console.print_exception()
        sys.exit(1)

    table = Table(title='Migrations')
    table.add_column('ID', style='cyan')
    table.add_column('Source')
    table.add_column('Destination')
    table.add_column('User')
    table.add_column('Status')
    table.add_column('Submitted', style='blue')

    for migration in migrations:
        style = STATUS_STYLES[migration.status]
        table.add_row(
            str(migration.id),
            f'{migration.svn_group}/{migration.svn_project}',
            migration.gitlab_group,
            migration.user,
            f'[{style}]{migration.status.value}[/{style}]',
            migration.created_at.strftime('%Y-%m-%d %H:%M:%S'),
        )

    console.print(table)


@cli.command()
@click.argument('migration_id', type=int)
@click.pass_context
def history(ctx: click.Context, migration_id: int) -> None:
    """Show the step history of a migration job."""
    try:
        config = _load_config(ctx)
        _setup_logging_with_config(ctx, config)

        engine = MigrationEngine(config)
        try:
            engine.store.find_by_id(migration_id)
            records = engine.store.history_for(migration_id)
        finally:
            engine.close()

    except MigrationNotFoundError as e:
        console.print(f'[red]✗[/red] {e}')
        sys.exit(1)
    except Exception as e:
        console.print(f'[red]✗[/red] Failed to load history: {e}')
        if ctx.obj.get('verbose'):
            console.print_exception()
        sys.exit(1)

    table = Table(title=f'Migration {migration_id} history')
    table.add_column('Date', style='blue')
    table.add_column('Step', style='cyan')
    table.add_column('Status')
    table.add_column('Data')

    for record in records:
        style = STATUS_STYLES[record.status]
        table.add_row(
            record.date.strftime('%Y-%m-%d %H:%M:%S'),
            record.step.value,
            f'[{style}]{record.status.value}[/{style}]',
            record.data or '',
        )

    console.print(table)


@cli.command()
@click.option(
    '--stale-after',
    type=int,
    default=None,
    help='Seconds without progress before a RUNNING job is failed',
)
@click.pass_context
def reconcile(ctx: click.Context, stale_after: Optional[int]) -> None:
    """Fail jobs left RUNNING by an interrupted process."""
    try:
        config = _load_config(ctx)
        _setup_logging_with_config(ctx, config)

        engine = MigrationEngine(config)
        try:
            reconciled = engine.reconcile(stale_after)
        finally:
            engine.close()

    except Exception as e:
        console.print(f'[red]✗[/red] Reconciliation failed: {e}')
        if ctx.obj.get('verbose'):
            console.print_exception()
        sys.exit(1)

    if reconciled:
        ids = ', '.join(str(i) for i in reconciled)
        console.print(f'[yellow]Marked FAILED:[/yellow] {ids}')
    else:
        console.print('[green]✓[/green] No stale migrations')


@cli.command()
@click.pass_context
def validate(ctx: click.Context) -> None:
    """Validate configuration and GitLab connectivity."""
    console.print(
        Panel.fit(
            '[bold cyan]svn2git-migrate[/bold cyan]\nValidating configuration...',
            border_style='cyan',
        )
    )

    try:
        config = _load_config(ctx)

        engine = MigrationEngine(config)
        try:
            asyncio.run(engine.check_connectivity())
        finally:
            engine.close()

        console.print('[green]✓[/green] Connectivity validation passed')
        console.print('[green]✓[/green] Configuration validation completed')

    except Exception as e:
        console.print(f'[red]✗[/red] Validation failed: {e}')
        if ctx.obj.get('verbose'):
            console.print_exception()
        sys.exit(1)


def _load_config(ctx: click.Context) -> Config:
    """Load configuration from file or environment."""
    config_path = ctx.obj.get('config_path')

    if config_path:
        return Config.from_file(config_path)

    default_paths = ['config.yaml', 'config.yml', '.svn2git-migrate.yaml']
    for path in default_paths:
        if Path(path).exists():
            return Config.from_file(path)

    # Fall back to environment variables
    try:
        return Config.from_env()
    except Exception:
        raise FileNotFoundError(
            'No configuration found. Use --config to specify a file or run "svn2git-migrate init" to create one.'
        )


def _setup_logging_with_config(ctx: click.Context, config: Config) -> None:
    """Setup logging with configuration from config file."""
    verbose = ctx.obj.get('verbose', False)

    # Verbose flag overrides the configured level
    log_level = 'DEBUG' if verbose else config.logging.level
    setup_logging(
        level=log_level, log_file=config.logging.file, log_format=config.logging.format
    )


async def _run_migrations(
    engine: MigrationEngine, migration_ids: List[int]
) -> List[MigrationOutcome]:
    """Schedule every job, then keep the process alive until they finish."""
    with console.status('[blue]Migrations in progress...'):
        for migration_id in migration_ids:
            engine.start_migration(migration_id)
        return await engine.wait()


def _display_outcomes(outcomes: List[MigrationOutcome]) -> None:
    """Display migration outcomes."""
    table = Table(title='Migration Summary')
    table.add_column('ID', style='cyan')
    table.add_column('Status')
    table.add_column('Failed step', style='yellow')
    table.add_column('Error', style='red')

    for outcome in sorted(outcomes, key=lambda o: o.migration_id):
        style = STATUS_STYLES[outcome.status]
        table.add_row(
            str(outcome.migration_id),
            f'[{style}]{outcome.status.value}[/{style}]',
            outcome.failed_step.value if outcome.failed_step else '',
            outcome.error or '',
        )

    console.print(table)


def main() -> None:
    """Main entry point for the CLI application."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print('\n[red]Migration interrupted by user[/red]')
        sys.exit(1)
    except Exception as e:
        console.print(f'[red]Error: {e}[/red]')
        sys.exit(1)


if __name__ == '__main__':
    main()
