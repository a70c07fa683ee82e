# alembic/versions/3f1c9a2b7d10_create_nfes_table.py
"""Create nfes table

Revision ID: 3f1c9a2b7d10
Revises:
Create Date: 2025-06-02 10:12:41.518203

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3f1c9a2b7d10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'nfes',
        sa.Column('access_key', sa.String(length=44), nullable=False, comment='Chave de acesso da NFe (44 dígitos).'),
        sa.Column('number', sa.String(length=20), nullable=False),
        sa.Column('series', sa.String(length=10), nullable=False),
        sa.Column('issuer_cnpj', sa.String(length=14), nullable=False, comment='CNPJ do emitente da nota fiscal.'),
        sa.Column('issuer_name', sa.String(length=255), nullable=False),
        sa.Column('issued_at', sa.DateTime(timezone=True), nullable=False, comment='Data e hora de emissão da NFe.'),
        sa.Column('total_value', sa.Numeric(precision=15, scale=2), nullable=False, comment='Valor total da nota fiscal.'),
        sa.Column('xml_path', sa.String(length=500), nullable=False, comment='Caminho relativo do XML no armazenamento.'),
        sa.Column('status', sa.String(length=20), server_default='authorized', nullable=False),
        sa.Column('canceled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('access_key', name=op.f('pk_nfes')),
    )
    # Índices das consultas de listagem e estatísticas
    op.create_index('ix_nfes_issuer_cnpj', 'nfes', ['issuer_cnpj'], unique=False)
    op.create_index('ix_nfes_issued_at', 'nfes', [sa.text('issued_at DESC')], unique=False)
    op.create_index('ix_nfes_status', 'nfes', ['status'], unique=False)
    op.create_index('ix_nfes_created_at', 'nfes', [sa.text('created_at DESC')], unique=False)
    op.create_index('ix_nfes_issuer_cnpj_issued_at', 'nfes', ['issuer_cnpj', sa.text('issued_at DESC')], unique=False)


def downgrade() -> None:
    op.drop_index('ix_nfes_issuer_cnpj_issued_at', table_name='nfes')
    op.drop_index('ix_nfes_created_at', table_name='nfes')
    op.drop_index('ix_nfes_status', table_name='nfes')
    op.drop_index('ix_nfes_issued_at', table_name='nfes')
    op.drop_index('ix_nfes_issuer_cnpj', table_name='nfes')
    op.drop_table('nfes')
