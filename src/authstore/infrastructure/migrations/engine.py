"""
Schema Migration Engine

Advances each module's schema to the newest migration file shipped for
it. Per module the ledger moves through:

    unknown-schema (no ledger table) -> uninitialized (no row) -> at-version(V)

Migration files live in ``<root>/<module>/`` and are named
``YYYYMMDDHHMMSS_<description>.sql``. The 14-digit prefix is a UTC
timestamp; it orders the files and becomes the module's version once
applied.

Pending files of a module are concatenated, followed by the ledger
upsert, and executed as one anonymous ``DO`` block so the driver's
single-statement restriction holds. All modules of one invocation share
one transaction: either every schema change and version bump commits,
or nothing does.

Concurrent invocations against one database are not coordinated.
"""

import re
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator, Callable, Iterable, Optional, Sequence

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from authstore.config.logging_config import get_logger
from authstore.domain.exceptions import MigrationError, MigrationStage
from authstore.infrastructure.database.codecs import optional_from_micros, timestamp_select_sql
from authstore.infrastructure.database.columns import SCHEMA, qualified_table, quote_ident

logger = get_logger(__name__)

BASE_MODULE = "base"
MODULES: tuple[str, ...] = (BASE_MODULE, "auth", "cache")

LEDGER_TABLE = qualified_table("module_version")
DEFAULT_ROOT = Path(__file__).parent / "sql"

DOLLAR_TAG = "$authstore_migration$"
_FILENAME = re.compile(r"^(?P<version>\d{14})_[A-Za-z0-9_\-]+\.sql$")


@dataclass(frozen=True, order=True)
class MigrationFile:
    """A migration file and the version it brings its module to."""

    version: datetime
    path: Path = field(compare=False)

    @classmethod
    def from_path(cls, path: Path) -> "MigrationFile":
        """
        Parse the version out of a migration filename.

        Raises:
            ValueError: If the name does not follow the migration pattern
        """
        match = _FILENAME.match(path.name)
        if match is None:
            raise ValueError(f"malformed migration filename: {path.name}")
        version = datetime.strptime(match.group("version"), "%Y%m%d%H%M%S")
        return cls(version.replace(tzinfo=timezone.utc), path)

    @property
    def name(self) -> str:
        return self.path.name


@dataclass
class ModuleMigrationResult:
    """
    Outcome of migrating one module.

    Attributes:
        module: Module name
        previous_version: Ledger version before the run (None if never migrated)
        files: Migration files selected, in application order
        script: SQL that was (or in dry-run, would be) executed
        applied: Whether ``script`` was executed
    """

    module: str
    previous_version: Optional[datetime]
    files: list[MigrationFile] = field(default_factory=list)
    script: Optional[str] = None
    applied: bool = False

    @property
    def is_noop(self) -> bool:
        """Whether the module was already up to date."""
        return not self.files

    @property
    def new_version(self) -> Optional[datetime]:
        """Version the ledger holds after the script runs."""
        if self.files:
            return self.files[-1].version
        return self.previous_version


def order_modules(requested: Iterable[str]) -> list[str]:
    """
    Order a module request for execution.

    ``base`` always runs first; the rest keep the order given, without
    duplicates.

    Raises:
        ValueError: If a module is not one of ``MODULES``
    """
    ordered = [BASE_MODULE]
    for module in requested:
        if module not in MODULES:
            raise ValueError(f"unknown module {module!r}; expected one of {', '.join(MODULES)}")
        if module not in ordered:
            ordered.append(module)
    return ordered


def discover(root: Path, module: str) -> list[MigrationFile]:
    """
    List a module's migration files in version order.

    Non-``.sql`` files are ignored. A missing module directory means the
    module has no migrations.

    Raises:
        ValueError: On a malformed ``.sql`` filename or a duplicated version
    """
    directory = root / module
    if not directory.is_dir():
        return []
    files = sorted(
        MigrationFile.from_path(path)
        for path in directory.iterdir()
        if path.is_file() and path.suffix == ".sql"
    )
    for previous, current in zip(files, files[1:]):
        if previous.version == current.version:
            raise ValueError(f"duplicate migration version: {previous.name}, {current.name}")
    return files


def select_pending(files: Sequence[MigrationFile], current: Optional[datetime]) -> list[MigrationFile]:
    """Files newer than ``current``; all of them when ``current`` is None."""
    if current is None:
        return list(files)
    return [f for f in files if f.version > current]


def ledger_upsert_sql(module: str, version: datetime) -> str:
    """
    Statement recording ``version`` for ``module``.

    Both values are interpolated: the module comes from ``MODULES`` and
    the version was parsed from a filename.
    """
    if module not in MODULES:
        raise ValueError(f"unknown module {module!r}")
    stamp = version.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S+00")
    return (
        f"INSERT INTO {LEDGER_TABLE} ({quote_ident('module')}, {quote_ident('version')}) "
        f"VALUES ('{module}', TIMESTAMPTZ '{stamp}') "
        f"ON CONFLICT ({quote_ident('module')}) DO UPDATE SET {quote_ident('version')} = EXCLUDED.{quote_ident('version')};"
    )


def terminate(content: str) -> str:
    """
    Ensure a file's last statement ends with a semicolon.

    Trailing blank lines and ``--`` comments are skipped when looking
    for the final statement. A missing terminator goes on its own line so
    it cannot land inside a trailing comment.
    """
    body = content.rstrip()
    for line in reversed(body.splitlines()):
        code = line.split("--", 1)[0].rstrip()
        if not code:
            continue
        if code.endswith(";"):
            return body
        return body + "\n;"
    return body


def build_script(module: str, files: Sequence[tuple[MigrationFile, str]]) -> str:
    """
    Wrap file contents and the ledger upsert in one ``DO`` block.

    Args:
        module: Module being migrated
        files: Pending files with their contents, in version order

    Raises:
        ValueError: If there is nothing to apply, or a file contains the block's dollar tag
    """
    if not files:
        raise ValueError("no migration files to apply")

    parts = [f"DO {DOLLAR_TAG}", "BEGIN"]
    for migration, content in files:
        if DOLLAR_TAG in content:
            raise ValueError(f"{migration.name} contains the reserved tag {DOLLAR_TAG}")
        parts.append(f"-- {migration.name}")
        parts.append(terminate(content))
    parts.append(f"-- ledger: {module}")
    parts.append(ledger_upsert_sql(module, files[-1][0].version))
    parts.append(f"END {DOLLAR_TAG};")
    return "\n".join(parts) + "\n"


class MigrationEngine:
    """
    Applies pending migrations for a set of modules.

    Usage:
        engine = MigrationEngine(async_engine)
        results = await engine.run(["auth", "cache"], apply=True)
    """

    def __init__(
        self,
        engine: AsyncEngine,
        root: Optional[Path] = None,
        *,
        on_stage: Optional[Callable[[str, str], None]] = None,
    ) -> None:
        """
        Args:
            engine: Database engine
            root: Directory holding one subdirectory per module
            on_stage: Called with (module, message) as each stage completes
        """
        self._engine = engine
        self._root = root or DEFAULT_ROOT
        self._on_stage = on_stage

    async def run(self, modules: Iterable[str], *, apply: bool = False) -> list[ModuleMigrationResult]:
        """
        Migrate ``modules`` (always preceded by ``base``).

        With ``apply`` false this is a dry run: pending scripts are built
        and returned but never executed, and the ledger is untouched.

        Raises:
            ValueError: If an unknown module is requested
            MigrationError: If any stage of any module fails; nothing is committed
        """
        ordered = order_modules(modules)
        logger.info("Migration run started", modules=ordered, apply=apply)

        results: list[ModuleMigrationResult] = []
        if apply:
            async with self._engine.begin() as conn:
                for module in ordered:
                    results.append(await self.migrate_module(conn, module, apply=True))
        else:
            # Never committed: leaving the block rolls back
            async with self._engine.connect() as conn:
                for module in ordered:
                    results.append(await self.migrate_module(conn, module, apply=False))

        logger.info(
            "Migration run finished",
            applied=[r.module for r in results if r.applied],
            up_to_date=[r.module for r in results if r.is_noop],
        )
        return results

    async def migrate_module(
        self,
        conn: AsyncConnection,
        module: str,
        *,
        apply: bool,
    ) -> ModuleMigrationResult:
        """Run every stage for one module on an open connection."""
        async with self._stage(MigrationStage.SCHEMA_CHECK, module):
            ledger_exists = await self._ledger_exists(conn)
        self._report(module, "ledger present" if ledger_exists else "ledger absent")

        current: Optional[datetime] = None
        if ledger_exists:
            async with self._stage(MigrationStage.VERSION_READ, module):
                current = await self._read_version(conn, module)
        self._report(module, f"current version {_format_version(current)}")

        async with self._stage(MigrationStage.FILE_DISCOVERY, module):
            pending = select_pending(discover(self._root, module), current)
        result = ModuleMigrationResult(module=module, previous_version=current, files=pending)
        if not pending:
            self._report(module, "up to date")
            return result
        self._report(module, f"{len(pending)} pending: {', '.join(f.name for f in pending)}")

        async with self._stage(MigrationStage.FILE_READ, module):
            contents = [(f, f.path.read_text(encoding="utf-8")) for f in pending]
            result.script = build_script(module, contents)

        if not apply:
            self._report(module, "dry run, not applied")
            return result

        async with self._stage(MigrationStage.APPLY, module):
            await conn.exec_driver_sql(result.script)
        result.applied = True
        self._report(module, f"applied, now at {_format_version(result.new_version)}")
        logger.info(
            "Module migrated",
            module=module,
            previous_version=_format_version(current),
            new_version=_format_version(result.new_version),
            files=len(pending),
        )
        return result

    async def _ledger_exists(self, conn: AsyncConnection) -> bool:
        result = await conn.execute(
            text("SELECT to_regclass(:name) IS NOT NULL"),
            {"name": f"{SCHEMA}.module_version"},
        )
        return bool(result.scalar())

    async def _read_version(self, conn: AsyncConnection, module: str) -> Optional[datetime]:
        result = await conn.execute(
            text(
                f"SELECT {timestamp_select_sql(quote_ident('version'))} "
                f"FROM {LEDGER_TABLE} WHERE {quote_ident('module')} = :module"
            ),
            {"module": module},
        )
        return optional_from_micros(result.scalar(), "version")

    @asynccontextmanager
    async def _stage(self, stage: MigrationStage, module: str) -> AsyncIterator[None]:
        try:
            yield
        except MigrationError:
            raise
        except Exception as e:
            logger.error(
                "Migration stage failed",
                module=module,
                stage=stage.value,
                error_type=type(e).__name__,
                error=str(e),
            )
            raise MigrationError(stage, module, e) from e

    def _report(self, module: str, message: str) -> None:
        logger.debug("Migration stage", module=module, detail=message)
        if self._on_stage is not None:
            self._on_stage(module, message)


def _format_version(version: Optional[datetime]) -> str:
    if version is None:
        return "none"
    return version.strftime("%Y%m%d%H%M%S")
