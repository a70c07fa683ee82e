# src/database/base_repository.py
# Provides a base class for ORM repositories with a managed session scope.

from contextlib import contextmanager
from typing import Generator

from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker, Session

from src.utils.logger import logger
from src.api.errors import DatabaseError


class BaseRepository:
    """
    Base class for data repositories using SQLAlchemy ORM Sessions.
    Each repository owns a session factory bound to the injected engine, so
    tests can hand in an isolated engine without touching the global one.
    """

    def __init__(self, engine: Engine):
        if not isinstance(engine, Engine):
            raise TypeError("engine must be an instance of sqlalchemy.engine.Engine")
        self.engine = engine
        self._session_factory = sessionmaker(
            autocommit=False, autoflush=False, bind=engine, expire_on_commit=False
        )
        logger.debug(f"{self.__class__.__name__} initialized with SQLAlchemy engine: {engine.url.database}")

    @contextmanager
    def _session(self) -> Generator[Session, None, None]:
        """
        Context manager for one unit of work: commit on success, rollback on error.
        IntegrityError is re-raised untouched so subclasses can translate it.
        """
        db = self._session_factory()
        try:
            yield db
            db.commit()
        except IntegrityError:
            db.rollback()
            raise
        except SQLAlchemyError as sql_ex:
            db.rollback()
            logger.error(f"Database error occurred in session: {sql_ex}", exc_info=True)
            raise DatabaseError(f"Database operation failed: {sql_ex}") from sql_ex
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
