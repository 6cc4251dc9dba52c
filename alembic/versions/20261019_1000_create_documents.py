"""Create documents table

Revision ID: create_documents
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = 'create_documents'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """文档表：inventory / incidents 集合共用"""
    op.create_table('documents',
        sa.Column('collection', sa.String(length=64), nullable=False, comment='集合名'),
        sa.Column('id', sa.String(length=64), nullable=False, comment='文档ID'),
        sa.Column('data', postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default='{}', comment='文档内容'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1', comment='文档版本'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='创建时间'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='最后更新时间'),
        sa.PrimaryKeyConstraint('collection', 'id')
    )

    op.create_index('ix_documents_collection', 'documents', ['collection'], unique=False)
    op.create_index('ix_documents_updated', 'documents', ['updated_at'], unique=False)
    # 按 inventoryItemId 查事故
    op.create_index('ix_documents_data_gin', 'documents', ['data'], unique=False, postgresql_using='gin')


def downgrade() -> None:
    op.drop_index('ix_documents_data_gin', table_name='documents')
    op.drop_index('ix_documents_updated', table_name='documents')
    op.drop_index('ix_documents_collection', table_name='documents')
    op.drop_table('documents')
