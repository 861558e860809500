"""Main CLI entry point for bitbucket2gitea."""

import sys
import asyncio
from typing import Optional
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .. import __version__
from ..config.config import Config
from ..utils.logging import setup_logging
from ..migration.engine import MigrationEngine
from ..migration.orchestrator import MigrationOptions, MigrationSummary

console = Console()

DEFAULT_CONFIG_PATHS = ['config.yaml', 'config.yml', '.bitbucket2gitea.yaml']


@click.group()
@click.version_option(version=__version__, prog_name='bitbucket2gitea')
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
    """bitbucket2gitea - Migrate a Bitbucket Server repository and its permissions to Gitea."""
    ctx.ensure_object(dict)

    if config:
        ctx.obj['config_path'] = config
    ctx.obj['verbose'] = verbose

    # Basic logging until the configuration is loaded
    setup_logging('DEBUG' if verbose else 'INFO')


@cli.command()
@click.option(
    '--output',
    '-o',
    default='config.yaml',
    help='Output configuration file path',
)
def init(output: str) -> None:
    """Initialize a new configuration file."""
    console.print(
        Panel.fit(
            '[bold green]bitbucket2gitea[/bold green]\n'
            'Initializing configuration...',
            border_style='green',
        )
    )

    try:
        Config.create_template(output)

        console.print(f'[green]✓[/green] Configuration template created at: {output}')
        console.print(
            f'[yellow]Please edit {output} with your Bitbucket and Gitea details[/yellow]'
        )

    except Exception as e:
        console.print(f'[red]✗[/red] Failed to create configuration: {e}')
        sys.exit(1)


@cli.command()
@click.option('--project-key', required=True, help='The parent project key')
@click.option('--repo-slug', required=True, help='The repository slug')
@click.option(
    '--target-owner',
    default='',
    help='Gitea target owner (defaults to the project name)',
)
@click.option(
    '--target-repo',
    default='',
    help='Gitea target repository (defaults to the repository name)',
)
@click.option(
    '--source-id',
    type=int,
    default=None,
    help='Gitea authentication source ID applied to created users',
)
@click.option(
    '--dry-run',
    is_flag=True,
    help='Perform a dry run without making changes',
)
@click.pass_context
def migrate(
    ctx: click.Context,
    project_key: str,
    repo_slug: str,
    target_owner: str,
    target_repo: str,
    source_id: Optional[int],
    dry_run: bool,
) -> None:
    """Migrate a repository, its project and their permissions."""
    console.print(
        Panel.fit(
            '[bold blue]bitbucket2gitea[/bold blue]\n'
            f'Migrating {project_key}/{repo_slug}...',
            border_style='blue',
        )
    )

    if dry_run:
        console.print(
            '[yellow]Running in dry-run mode - no changes will be made[/yellow]'
        )

    try:
        config = _load_config(ctx)
        _setup_logging_with_config(ctx, config)

        options = MigrationOptions(
            project_key=project_key,
            repo_slug=repo_slug,
            target_owner=target_owner,
            target_repo=target_repo,
            source_id=config.migration.source_id if source_id is None else source_id,
        )

        summary = asyncio.run(_run_migration(config, options, dry_run))

    except Exception as e:
        console.print(f'[red]✗[/red] Migration failed: {e}')
        if ctx.obj.get('verbose'):
            console.print_exception()
        sys.exit(1)

    _display_migration_summary(summary)

    if not summary.success:
        console.print(f'[red]✗[/red] Migration failed: {summary.error}')
        sys.exit(1)

    console.print('[green]✓[/green] Migration completed successfully')


@cli.command()
@click.pass_context
def validate(ctx: click.Context) -> None:
    """Validate configuration and connectivity to both servers."""
    console.print(
        Panel.fit(
            '[bold cyan]bitbucket2gitea[/bold cyan]\nValidating configuration...',
            border_style='cyan',
        )
    )

    try:
        config = _load_config(ctx)

        engine = MigrationEngine(config)
        asyncio.run(engine.test_connectivity())

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
        if not Path(config_path).exists():
            raise FileNotFoundError(f'Configuration file not found: {config_path}')
        return Config.from_file(config_path)

    for path in DEFAULT_CONFIG_PATHS:
        if Path(path).exists():
            return Config.from_file(path)

    # Fall back to environment variables
    try:
        return Config.from_env()
    except Exception as e:
        raise FileNotFoundError(
            'No configuration found. Use --config to specify a file or run '
            f'"bitbucket2gitea init" to create one. Environment settings: {e}'
        ) from e


def _setup_logging_with_config(ctx: click.Context, config: Config) -> None:
    """Setup logging with configuration from config file."""
    verbose = ctx.obj.get('verbose', False)

    # Verbose flag overrides the configured level
    log_level = 'DEBUG' if verbose else config.logging.level
    setup_logging(
        level=log_level, log_file=config.logging.file, log_format=config.logging.format
    )


async def _run_migration(
    config: Config, options: MigrationOptions, dry_run: bool
) -> MigrationSummary:
    """Run the migration with a status spinner."""
    engine = MigrationEngine(config)

    with console.status(f'Migrating {options.project_key}/{options.repo_slug}...'):
        return await engine.migrate(options, dry_run=dry_run)


def _display_migration_summary(summary: MigrationSummary) -> None:
    """Display migration summary results."""
    table = Table(title='Migration Summary')
    table.add_column('Step', style='cyan')
    table.add_column('Result', style='green')

    table.add_row('State', summary.state.value)
    if summary.failed_state:
        table.add_row('Failed during', f'[red]{summary.failed_state.value}[/red]')
    if summary.project:
        table.add_row('Source project', f'{summary.project.key} ({summary.project.name})')
    if summary.repository:
        table.add_row('Source repository', summary.repository.slug)
    if summary.clone_addr:
        table.add_row('Clone address', summary.clone_addr)
    if summary.users:
        created = set(summary.created_users)
        table.add_row(
            'Users',
            ', '.join(
                f'{u.login_name} (new)' if u.login_name in created else u.login_name
                for u in summary.users
            ),
        )
    if summary.organization:
        table.add_row(
            'Organization',
            f'{summary.organization.name} ({summary.organization.visibility.value})',
        )
    if summary.target_repository:
        repo = summary.target_repository
        table.add_row(
            'Repository',
            f'{summary.target_owner}/{repo.name} '
            f'({"private" if repo.private else "public"})',
        )
    if summary.dry_run:
        table.add_row('Mode', '[yellow]dry run[/yellow]')

    console.print(table)

    for title, permissions in (
        ('Project Permissions', summary.project_permissions),
        ('Repository Permissions', summary.repository_permissions),
    ):
        if not permissions:
            continue
        perm_table = Table(title=title)
        perm_table.add_column('Level', style='cyan')
        perm_table.add_column('Users', style='green')
        for level, usernames in permissions.items():
            perm_table.add_row(level, ', '.join(usernames))
        console.print(perm_table)

    if summary.started_at and summary.completed_at:
        duration = summary.completed_at - summary.started_at
        console.print(f'\n[blue]Migration Duration:[/blue] {duration}')


def main() -> None:
    """Main entry point for the CLI application."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print('\n[red]Migration interrupted by user[/red]')
        sys.exit(1)


if __name__ == '__main__':
    main()
