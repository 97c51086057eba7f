"""
Schema migrations.

Per-module SQL migration files and the engine that applies them.
"""

from authstore.infrastructure.migrations.engine import (
    BASE_MODULE,
    DEFAULT_ROOT,
    MODULES,
    MigrationEngine,
    MigrationFile,
    ModuleMigrationResult,
    build_script,
    discover,
    ledger_upsert_sql,
    order_modules,
    select_pending,
    terminate,
)

__all__ = [
    "BASE_MODULE",
    "DEFAULT_ROOT",
    "MODULES",
    "MigrationEngine",
    "MigrationFile",
    "ModuleMigrationResult",
    "build_script",
    "discover",
    "ledger_upsert_sql",
    "order_modules",
    "select_pending",
    "terminate",
]
