"""Alembic environment for the marketplace schema.

Used both by the ``alembic`` CLI (run from ``backend/``) and by
:func:`marketplace.db.session.run_migrations` at application startup.
"""

from __future__ import annotations

import asyncio
import re
import sys
from datetime import datetime, timezone
from logging.config import fileConfig
from pathlib import Path
from typing import Any

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config
from sqlmodel import SQLModel

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from marketplace.core.config import settings  # noqa: E402
from marketplace.db import base  # noqa: F401,E402  # register every table on the metadata

VERSIONS_DIR = Path(__file__).parent / "versions"
REVISION_FILE = re.compile(r"^\d{8}_(\d{4})_")

config = context.config
target_metadata = SQLModel.metadata

if config.config_file_name is not None and config.attributes.get("configure_logger", True):
    fileConfig(config.config_file_name)

if not config.attributes.get("url_configured"):
    config.set_main_option("sqlalchemy.url", settings.DATABASE_URL)


def _next_revision_id() -> str:
    """``YYYYMMDD_NNNN`` with NNNN one past the highest existing sequence."""
    sequences = [
        int(match.group(1))
        for match in (REVISION_FILE.match(path.name) for path in VERSIONS_DIR.glob("*.py"))
        if match
    ]
    today = datetime.now(timezone.utc).strftime("%Y%m%d")
    return f"{today}_{max(sequences, default=0) + 1:04d}"


def _name_revision(context, revision, directives) -> None:
    if directives:
        directives[0].rev_id = _next_revision_id()


def _options(**extra: Any) -> dict[str, Any]:
    return {
        "target_metadata": target_metadata,
        "compare_type": True,
        "render_as_batch": True,
        "process_revision_directives": _name_revision,
        **extra,
    }


def run_migrations_offline() -> None:
    context.configure(
        **_options(
            url=config.get_main_option("sqlalchemy.url"),
            literal_binds=True,
            dialect_opts={"paramstyle": "named"},
        )
    )
    with context.begin_transaction():
        context.run_migrations()


def _run_on_connection(connection: Connection) -> None:
    context.configure(**_options(connection=connection))
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    engine = async_engine_from_config(
        config.get_section(config.config_ini_section) or {},
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_run_on_connection)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
