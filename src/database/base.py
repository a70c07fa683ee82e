# src/database/base.py
# Define a base declarativa para os modelos SQLAlchemy ORM.

from sqlalchemy.orm import declarative_base
from sqlalchemy import MetaData

# Convenção de nomenclatura para constraints, mantida igual nas migrações do Alembic
convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s"
}

metadata = MetaData(naming_convention=convention)

Base = declarative_base(metadata=metadata)
