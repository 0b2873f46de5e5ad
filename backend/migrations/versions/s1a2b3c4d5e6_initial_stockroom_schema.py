"""initial stockroom schema

Revision ID: s1a2b3c4d5e6
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the complete schema from scratch:
- products / product_variants: catalogue and per-(color, size, channel) stock
- transactions / transaction_items: sales and manual cash entries
- users / session_tokens: staff accounts and bearer sessions
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 's1a2b3c4d5e6'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ============================================================================
    # products: Catalogue
    # ============================================================================
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('ref', sa.String(length=64), nullable=False),
        sa.Column('category', sa.String(length=64), nullable=False),
        sa.Column('price', sa.Float(), nullable=False),
        sa.Column('wholesale_price', sa.Float(), nullable=True),
        sa.Column('trend', sa.String(length=16), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=True),
        sa.Column('season', sa.String(length=32), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('image_url', sa.String(length=512), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('ref'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_products_category', 'products', ['category'])

    # ============================================================================
    # product_variants: Stock counters, never negative
    # ============================================================================
    op.create_table(
        'product_variants',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('color', sa.String(length=32), nullable=False),
        sa.Column('size', sa.String(length=16), nullable=False),
        sa.Column('channel', sa.String(length=16), nullable=False),
        sa.Column('stock', sa.Integer(), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('product_id', 'color', 'size', 'channel', name='uq_variant_identity'),
        sa.CheckConstraint("channel IN ('single', 'wholesale')", name='ck_variant_channel'),
        sa.CheckConstraint('stock >= 0', name='ck_variant_stock_non_negative'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_product_variants_product_id', 'product_variants', ['product_id'])

    # ============================================================================
    # transactions: Sales (TXN-*) and manual cash entries (MAN-*)
    # ============================================================================
    op.create_table(
        'transactions',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('type', sa.String(length=8), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=True),
        sa.Column('total', sa.Float(), nullable=False),
        sa.Column('payment_method', sa.String(length=32), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(length=64), nullable=True),
        sa.Column('location', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint("type IN ('sale', 'in', 'out')", name='ck_transactions_type'),
    )
    op.create_index('ix_transactions_created_at', 'transactions', ['created_at'])
    op.create_index('ix_transactions_type_status_created', 'transactions', ['type', 'status', 'created_at'])

    # ============================================================================
    # transaction_items: product_id is a snapshot, deliberately no FK
    # ============================================================================
    op.create_table(
        'transaction_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transaction_id', sa.String(length=32), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('color', sa.String(length=32), nullable=True),
        sa.Column('size', sa.String(length=16), nullable=True),
        sa.Column('channel', sa.String(length=16), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Float(), nullable=False),
        sa.ForeignKeyConstraint(['transaction_id'], ['transactions.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('quantity > 0', name='ck_transaction_items_quantity_positive'),
        sa.CheckConstraint('unit_price >= 0', name='ck_transaction_items_price_non_negative'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_transaction_items_transaction_id', 'transaction_items', ['transaction_id'])
    op.create_index('ix_transaction_items_product_id', 'transaction_items', ['product_id'])

    # ============================================================================
    # users / session_tokens: Identity
    # ============================================================================
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=16), nullable=False, server_default='manager'),
        sa.Column('created_at', sa.DateTime(), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('username'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'session_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('token_hash', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('last_used_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('token_hash'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_session_tokens_user_id', 'session_tokens', ['user_id'])


def downgrade():
    """Drop all tables (destructive operation)."""
    op.drop_table('session_tokens')
    op.drop_table('users')
    op.drop_table('transaction_items')
    op.drop_table('transactions')
    op.drop_table('product_variants')
    op.drop_table('products')
