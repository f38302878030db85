"""
Alembic environment — points migrations at leaddrip's models and DATABASE_URL.
"""
from logging.config import fileConfig

from sqlalchemy import engine_from_config, pool

from alembic import context

from leaddrip.config import DATABASE_URL
from leaddrip.database import Base
from leaddrip.models import db_run, do_not_contact, lead, user_config, watch_list  # noqa: F401

config = context.config

url = DATABASE_URL
if url.startswith('postgres://'):
    url = url.replace('postgres://', 'postgresql://', 1)
config.set_main_option('sqlalchemy.url', url)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Emit SQL to stdout instead of connecting."""
    context.configure(
        url=config.get_main_option('sqlalchemy.url'),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={'paramstyle': 'named'},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix='sqlalchemy.',
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
