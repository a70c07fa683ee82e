# src/database/schema_manager.py
# Gerencia a criação inicial das tabelas do banco de dados.

from sqlalchemy import inspect
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from .base import Base
from src.utils.logger import logger
from src.api.errors import DatabaseError


class SchemaManager:
    def __init__(self, engine: Engine):
        self.engine = engine
        logger.debug("SchemaManager inicializado com o engine do SQLAlchemy.")

    def initialize_schema(self):
        # Registra os modelos na metadata antes do create_all
        from src.domain import nfe_orm  # noqa: F401
        try:
            logger.info("Iniciando a criação do esquema do banco de dados...")
            Base.metadata.create_all(bind=self.engine)
            tables = inspect(self.engine).get_table_names()
            logger.info(f"Tabelas criadas/verificadas com sucesso: {', '.join(sorted(tables))}")
        except SQLAlchemyError as e:
            logger.critical(f"Falha na inicialização do esquema do banco de dados: {e}", exc_info=True)
            raise DatabaseError(f"Falha na inicialização do esquema: {e}") from e
