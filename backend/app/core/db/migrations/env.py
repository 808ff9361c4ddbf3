from __future__ import annotations

import os
import sys
from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, pool
from sqlalchemy.engine.url import make_url

# Run from `backend/` so `app.*` resolves.
sys.path.append(os.path.abspath(os.getcwd()))

from app.core.config import settings  # noqa: E402
from app.core.db.base import Base  # noqa: E402
from app.core.db.session import import_model_modules  # noqa: E402

import_model_modules()

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def database_url() -> str:
    """Settings win over an explicit `sqlalchemy.url`; the ledger has one database."""
    raw = settings.database_url or config.get_main_option("sqlalchemy.url")
    if not raw:
        raise RuntimeError("DATABASE_URL is not configured")
    return make_url(raw.strip()).render_as_string(hide_password=False)


def _configure_kwargs(url: str) -> dict:
    # SQLite cannot ALTER constraints in place; alembic rebuilds tables instead.
    return {
        "target_metadata": target_metadata,
        "compare_type": True,
        "render_as_batch": make_url(url).get_backend_name() == "sqlite",
    }


def run_migrations_offline() -> None:
    url = database_url()
    context.configure(url=url, literal_binds=True, dialect_opts={"paramstyle": "named"}, **_configure_kwargs(url))
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    url = database_url()
    engine = create_engine(url, poolclass=pool.NullPool)
    with engine.connect() as connection:
        context.configure(connection=connection, **_configure_kwargs(url))
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
