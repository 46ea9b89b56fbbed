"""product categories

Revision ID: 0002_product_categories
Revises: 0001_initial_ledger
Create Date: 2026-10-19 00:00:00.000000

Adds the categories table and an optional products.category_id.
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0002_product_categories'
down_revision = '0001_initial_ledger'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'categories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
        sqlite_autoincrement=True
    )

    with op.batch_alter_table('products', schema=None) as batch_op:
        batch_op.add_column(sa.Column('category_id', sa.Integer(), nullable=True))
        batch_op.create_index('ix_products_category_id', ['category_id'])
        batch_op.create_foreign_key(
            'fk_products_category_id', 'categories', ['category_id'], ['id'], ondelete='SET NULL'
        )


def downgrade():
    with op.batch_alter_table('products', schema=None) as batch_op:
        batch_op.drop_constraint('fk_products_category_id', type_='foreignkey')
        batch_op.drop_index('ix_products_category_id')
        batch_op.drop_column('category_id')

    op.drop_table('categories')
