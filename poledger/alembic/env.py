from __future__ import annotations

from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, pool

from poledger.app.config import settings
from poledger.app.db.base import Base
from poledger.app.db.models import models_v1  # noqa: F401  (registers the ledger tables)

if context.config.config_file_name is not None:
    fileConfig(context.config.config_file_name, disable_existing_loggers=False)

# the URL always comes from POLEDGER_DATABASE_URL, never from alembic.ini
DATABASE_URL = settings.database_url_normalized


def _configure(**kwargs) -> None:
    # compare_type catches Numeric precision and enum changes in autogenerate
    context.configure(target_metadata=Base.metadata, compare_type=True, **kwargs)


def run_offline() -> None:
    _configure(url=DATABASE_URL, literal_binds=True, dialect_opts={"paramstyle": "named"})
    with context.begin_transaction():
        context.run_migrations()


def run_online() -> None:
    engine = create_engine(DATABASE_URL, poolclass=pool.NullPool)
    with engine.connect() as connection:
        _configure(connection=connection)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_offline()
else:
    run_online()
