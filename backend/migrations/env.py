# Alembic env (sync, SQLAlchemy 2.x)
from __future__ import annotations

import importlib
import os
import pkgutil
import sys
from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, pool

# --- PYTHONPATH: backend/ ---
HERE = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(HERE, ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

# models must be imported for autogenerate to see their tables
import streamverse.models as models_pkg  # noqa: E402
from streamverse.db.base import Base  # noqa: E402


def import_submodules(package):
    for _finder, name, _ispkg in pkgutil.walk_packages(package.__path__, package.__name__ + "."):
        importlib.import_module(name)


import_submodules(models_pkg)

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def get_dsn() -> str:
    """DATABASE_URL from the environment, else sqlalchemy.url from alembic.ini."""
    env_dsn = os.getenv("DATABASE_URL")
    if env_dsn:
        return env_dsn
    url = config.get_main_option("sqlalchemy.url")
    if not url:
        raise RuntimeError("DATABASE_URL env var or sqlalchemy.url in alembic.ini must be set")
    return url


def run_migrations_offline() -> None:
    context.configure(
        url=get_dsn(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        compare_server_default=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = create_engine(get_dsn(), poolclass=pool.NullPool)
    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            compare_server_default=True,
        )
        with context.begin_transaction():
            context.run_migrations()
    connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
