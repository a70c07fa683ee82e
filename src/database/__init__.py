# src/database/__init__.py
# Initializes SQLAlchemy components: Engine and Base metadata.
# Uses local imports for logger/errors to prevent circular dependencies during Alembic runs.

import threading
from typing import Optional
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

# Importar Base diretamente - ESSENCIAL para Alembic
from .base import Base

_sqla_engine: Optional[Engine] = None
_engine_lock = threading.Lock()


def init_sqlalchemy(database_uri: str, pool_size: int = 10, max_overflow: int = 20) -> Engine:
    """
    Initializes the SQLAlchemy engine and database schema.
    Should be called once during application startup.
    """
    from src.utils.logger import logger
    from src.api.errors import DatabaseError, ConfigurationError

    global _sqla_engine
    with _engine_lock:
        if _sqla_engine:
            logger.warning("SQLAlchemy engine already initialized.")
            return _sqla_engine

        if not database_uri:
            raise ConfigurationError("Database URI is missing in configuration.")

        logger.info("Initializing SQLAlchemy engine...")
        engine_kwargs = {"pool_recycle": 3600, "echo": False}
        if database_uri.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
        else:
            engine_kwargs.update(pool_size=pool_size, max_overflow=max_overflow, pool_pre_ping=True)

        engine = None
        try:
            engine = create_engine(database_uri, **engine_kwargs)
            with engine.connect() as connection:
                connection.execute(text("SELECT 1"))
            logger.info("Database connection successful.")

            from .schema_manager import SchemaManager
            SchemaManager(engine).initialize_schema()

            _sqla_engine = engine
            logger.info("SQLAlchemy initialization complete.")
            return _sqla_engine
        except DatabaseError:
            if engine is not None:
                engine.dispose()
            raise
        except SQLAlchemyError as e:
            logger.critical(f"SQLAlchemy engine initialization failed: {e}", exc_info=True)
            if engine is not None:
                engine.dispose()
            raise DatabaseError(f"Failed to connect to the database: {e}") from e


def get_engine() -> Engine:
    if _sqla_engine is None:
        raise RuntimeError("SQLAlchemy engine has not been initialized. Call init_sqlalchemy() first.")
    return _sqla_engine


def check_database(engine: Engine) -> bool:
    """Runs a trivial query; used by the health endpoint."""
    from src.utils.logger import logger
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError as e:
        logger.warning(f"Database health check failed: {e}")
        return False


def dispose_sqlalchemy_engine():
    """Closes all connections in the engine's pool. Call during application shutdown."""
    from src.utils.logger import logger

    global _sqla_engine
    with _engine_lock:
        if _sqla_engine:
            logger.info("Disposing SQLAlchemy engine connection pool...")
            _sqla_engine.dispose()
            _sqla_engine = None
            logger.info("SQLAlchemy engine connection pool disposed.")
        else:
            logger.debug("SQLAlchemy engine shutdown called, but engine already disposed or not initialized.")


__all__ = [
    "init_sqlalchemy",
    "get_engine",
    "check_database",
    "dispose_sqlalchemy_engine",
    "Base",
]
