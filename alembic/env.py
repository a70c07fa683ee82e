# alembic/env.py
# Migration environment for the NFe sync database. The URL comes from the app's .env.
import os
import sys
from logging.config import fileConfig

from sqlalchemy import engine_from_config, pool

from alembic import context

# Allows running 'alembic' from the project root without installing the package
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from src.config import config as app_config  # noqa: E402
from src.database.base import Base  # noqa: E402
from src.domain import nfe_orm  # noqa: E402,F401

alembic_config = context.config
if alembic_config.config_file_name is not None:
    fileConfig(alembic_config.config_file_name)

if not app_config.SQLALCHEMY_DATABASE_URI:
    sys.exit("SQLALCHEMY_DATABASE_URI não está configurado (verifique DB_TYPE e as variáveis do banco no .env).")
# configparser interpolates '%', which appears in URL-encoded passwords
alembic_config.set_main_option('sqlalchemy.url', app_config.SQLALCHEMY_DATABASE_URI.replace('%', '%%'))

target_metadata = Base.metadata
MANAGED_TABLES = set(target_metadata.tables)


def include_object(obj, name, type_, reflected, compare_to):
    """Autogenerate only touches the tables this service owns."""
    if type_ == "table":
        return name in MANAGED_TABLES
    return True


def _configure_kwargs(dialect_name: str) -> dict:
    return {
        "target_metadata": target_metadata,
        "compare_type": True,
        "include_object": include_object,
        "render_as_batch": dialect_name == "sqlite",
    }


def run_migrations_offline() -> None:
    url = alembic_config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_configure_kwargs(url.split(":", 1)[0]),
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        alembic_config.get_section(alembic_config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(connection=connection, **_configure_kwargs(connection.dialect.name))
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
