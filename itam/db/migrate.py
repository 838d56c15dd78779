"""Schema bootstrap plus small, idempotent SQLite migrations."""

from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import text
from sqlalchemy.engine import Engine

from .session import Base

logger = logging.getLogger("itam.db.migrate")

# Columns added after the first schema shipped. Databases created earlier get
# them through ALTER TABLE; nothing is ever dropped.
ADDITIVE_COLUMNS: dict[str, dict[str, str]] = {
    "hardware_parts": {
        "condition": "TEXT",
        "source_inventory_id": "INTEGER",
        "removed_date": "TEXT",
        "updated_by": "INTEGER",
    },
    "hardware_software": {
        "software_license_id": "INTEGER",
        "uninstall_date": "TEXT",
    },
    "part_inventory": {
        "reorder_level": "INTEGER",
        "updated_at": "TEXT",
    },
    "activity_logs": {
        "related_type": "TEXT",
        "related_id": "INTEGER",
        "metadata": "JSON",
    },
    "component_issuance_details": {
        "old_component_condition": "TEXT",
        "new_component_condition": "TEXT",
    },
}

UNIQUE_INDEXES: tuple[tuple[str, str, tuple[str, ...]], ...] = (
    ("parts", "uq_parts_identity_idx", ("part_type", "brand", "model", "specifications")),
    ("part_inventory", "uq_part_inventory_condition_idx", ("part_id", "condition")),
    ("issuance", "uq_issuance_number_idx", ("issuance_number",)),
)


def _table_columns(engine: Engine, table: str) -> list[dict[str, object]]:
    with engine.connect() as conn:
        return conn.execute(text(f"PRAGMA table_info({table})")).mappings().all()


def _column_names(engine: Engine, table: str) -> set[str]:
    return {record["name"] for record in _table_columns(engine, table)}


def _add_column_sqlite(engine: Engine, table: str, col_def: str) -> None:
    with engine.begin() as conn:
        conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {col_def}"))


def _create_index_if_not_exists(engine: Engine, table: str, name: str, cols: Iterable[str], unique: bool = False) -> None:
    cols_sql = ", ".join(cols)
    unique_sql = "UNIQUE " if unique else ""
    with engine.begin() as conn:
        conn.execute(text(f"CREATE {unique_sql}INDEX IF NOT EXISTS {name} ON {table} ({cols_sql})"))


def run_migrations(engine: Engine) -> list[str]:
    """Bring an existing SQLite schema up to date; returns the columns added."""

    if engine.dialect.name != "sqlite":
        return []

    added: list[str] = []
    for table, needed in ADDITIVE_COLUMNS.items():
        existing = _column_names(engine, table)
        if not existing:
            # Table absent; create_all builds it fresh.
            continue
        for name, dtype in needed.items():
            if name not in existing:
                _add_column_sqlite(engine, table, f"{name} {dtype}")
                added.append(f"{table}.{name}")

    for table, name, cols in UNIQUE_INDEXES:
        if _column_names(engine, table):
            _create_index_if_not_exists(engine, table, name, cols, unique=True)

    if added:
        logger.info("schema.migrated", extra={"extra_data": {"added_columns": added}})
    return added


def init_db(engine: Engine | None = None) -> Engine:
    """Create missing tables, then apply additive migrations."""

    from .. import models  # noqa: F401  # populate Base.metadata

    if engine is None:
        from .session import engine as default_engine

        engine = default_engine
    run_migrations(engine)
    Base.metadata.create_all(bind=engine)
    return engine
