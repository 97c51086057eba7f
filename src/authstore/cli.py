"""Command-line interface for schema migrations."""

import asyncio
from pathlib import Path
from typing import Optional

import click
from sqlalchemy.ext.asyncio import create_async_engine

from authstore.config import get_settings
from authstore.config.logging_config import bind_context, configure_logging, get_logger
from authstore.config.settings import normalize_async_url
from authstore.domain.exceptions import MigrationError
from authstore.infrastructure.migrations.engine import MODULES, MigrationEngine, ModuleMigrationResult

logger = get_logger(__name__)


async def run_migrations(
    database_url: str,
    modules: tuple[str, ...],
    *,
    apply: bool,
    migrations_dir: Optional[Path],
) -> list[ModuleMigrationResult]:
    """Run the migration engine against ``database_url`` and dispose of the engine."""
    engine = create_async_engine(normalize_async_url(database_url), pool_pre_ping=True)
    try:
        migrator = MigrationEngine(
            engine,
            migrations_dir,
            on_stage=lambda module, message: click.echo(f"[{module}] {message}"),
        )
        return await migrator.run(modules, apply=apply)
    finally:
        await engine.dispose()


@click.command()
@click.version_option(package_name="authstore")
@click.option(
    "--database-url",
    envvar="AUTHSTORE_DB_URL",
    help="PostgreSQL connection string (defaults to configured settings).",
)
@click.option(
    "--apply",
    is_flag=True,
    default=False,
    help="Execute pending migrations. Without it the scripts are only printed.",
)
@click.option(
    "--migrations-dir",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Directory with one subdirectory of .sql files per module.",
)
@click.argument("modules", nargs=-1, required=True, type=click.Choice(MODULES))
def migrate(
    database_url: Optional[str],
    apply: bool,
    migrations_dir: Optional[Path],
    modules: tuple[str, ...],
) -> None:
    """Bring the schema of MODULES up to date.

    The base module always runs first. All modules share one
    transaction: if any fails, none is changed.

    \b
    Examples:
      authstore-migrate auth cache            # print pending scripts
      authstore-migrate --apply auth cache    # apply them
    """
    settings = get_settings()
    configure_logging(settings)
    bind_context(command="migrate")

    url = database_url or settings.database.async_url
    directory = migrations_dir or settings.migrations.directory

    try:
        results = asyncio.run(run_migrations(url, modules, apply=apply, migrations_dir=directory))
    except MigrationError as e:
        raise click.ClickException(
            f"module '{e.module}' failed during {e.stage}: {e.cause}"
            + (" (all changes rolled back)" if apply else "")
        ) from e
    except Exception as e:
        logger.error("Migration run aborted", error_type=type(e).__name__, error=str(e))
        raise click.ClickException(f"migration aborted: {e}") from e

    for result in results:
        if result.is_noop:
            continue
        if not apply and result.script:
            click.echo(f"-- {result.module}: would apply {len(result.files)} file(s)")
            click.echo(result.script)

    click.echo("")
    for result in results:
        if result.is_noop:
            status = "up to date"
        elif result.applied:
            status = f"applied {len(result.files)} file(s)"
        else:
            status = f"{len(result.files)} file(s) pending"
        version = result.new_version.strftime("%Y%m%d%H%M%S") if result.new_version else "none"
        click.echo(f"{click.style('ok', fg='green')}  {result.module}: {status} (version {version})")

    if not apply and any(not r.is_noop for r in results):
        click.echo("Dry run: nothing was applied. Re-run with --apply to execute.")
