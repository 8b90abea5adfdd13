"""create receipts table

Revision ID: 3f1c2a9d7b10
Revises: 
Create Date: 2025-06-02 10:12:31.402118

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3f1c2a9d7b10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'receipts',
        sa.Column('receipt_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('image_path', sa.String(), nullable=False),
        sa.Column('store_name', sa.String(), nullable=True),
        sa.Column('total_amount', sa.Integer(), nullable=True),
        sa.Column('receipt_date', sa.Date(), nullable=True),
        sa.Column('category', sa.String(), nullable=False, server_default='misc'),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('raw_text', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('receipt_id')
    )
    op.create_index('ix_receipts_user_id', 'receipts', ['user_id'])
    op.create_index('ix_receipts_user_id_receipt_date', 'receipts', ['user_id', 'receipt_date'])


def downgrade() -> None:
    op.drop_index('ix_receipts_user_id_receipt_date', table_name='receipts')
    op.drop_index('ix_receipts_user_id', table_name='receipts')
    op.drop_table('receipts')
