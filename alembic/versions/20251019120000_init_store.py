
from alembic import op
import sqlalchemy as sa

revision = "20251019120000"
down_revision = None

ORDER_STATUSES = ("PENDING", "PROCESSING", "CHECKOUT", "PAID", "DELIVERED", "FAILED")

def upgrade():
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=240), nullable=False),
        sa.Column('cost', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('stock', sa.Integer(), nullable=True),
        sa.Column('max_quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('weight', sa.Integer(), nullable=True),
        sa.Column('shopify_id', sa.String(length=64), nullable=True),
        sa.Column('custom_class', sa.String(length=64), nullable=True),
        sa.CheckConstraint('stock >= 0', name='ck_products_stock_non_negative'),
    )
    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), index=True, nullable=False),
        sa.Column('status', sa.Enum(*ORDER_STATUSES, name='orderstatus'), nullable=False, server_default='PENDING'),
        sa.Column('transaction_id', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_table(
        'order_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id', ondelete='SET NULL'), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('cost', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('extra_data', sa.JSON(), nullable=True),
        sa.Column('reserved', sa.Boolean(), nullable=False, server_default=sa.false()),
    )

def downgrade():
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_table('products')
    sa.Enum(name='orderstatus').drop(op.get_bind(), checkfirst=True)
