"""Create store and referral network schema

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID, JSONB

# revision identifiers
revision = '001_initial'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    ]


def upgrade():
    """Create catalogue, order, referral, commission and payout tables"""

    # ====================
    # PARTNERSHIP TIERS
    # ====================
    op.create_table(
        'partnership_tiers',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('name', sa.String(50), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('max_capacity', sa.Integer, nullable=False),
        sa.Column('current_count', sa.Integer, server_default='0', nullable=False),
        sa.Column('is_active', sa.Boolean, server_default='true', nullable=False),
        sa.Column('sort_order', sa.Integer, server_default='0', nullable=False),
        *_timestamps(),
        sa.CheckConstraint('current_count <= max_capacity', name='ck_tier_within_capacity'),
        sa.CheckConstraint('current_count >= 0', name='ck_tier_count_non_negative'),
    )
    op.create_index('ix_partnership_tiers_name', 'partnership_tiers', ['name'], unique=True)

    # ====================
    # USERS
    # ====================
    op.create_table(
        'users',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('phone', sa.String(20), nullable=True),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('role', sa.String(20), server_default='CUSTOMER', nullable=False),
        sa.Column('is_active', sa.Boolean, server_default='true', nullable=False),
        sa.Column('referral_code', sa.String(20), nullable=False),
        sa.Column('referrer_id', UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='RESTRICT'), nullable=True),
        sa.Column('partnership_tier_id', UUID(as_uuid=True),
                  sa.ForeignKey('partnership_tiers.id', ondelete='RESTRICT'), nullable=True),
        sa.Column('partnership_joined_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('wallet_balance', sa.Numeric(12, 2), server_default='0', nullable=False),
        sa.Column('total_earnings', sa.Numeric(12, 2), server_default='0', nullable=False),
        sa.Column('total_withdrawn', sa.Numeric(12, 2), server_default='0', nullable=False),
        sa.Column('joined_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_referral_code', 'users', ['referral_code'], unique=True)
    op.create_index('ix_users_referrer_id', 'users', ['referrer_id'])

    # ====================
    # CATALOGUE
    # ====================
    op.create_table(
        'categories',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('slug', sa.String(120), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('parent_id', UUID(as_uuid=True), sa.ForeignKey('categories.id', ondelete='SET NULL'), nullable=True),
        sa.Column('image_url', sa.String(500), nullable=True),
        sa.Column('sort_order', sa.Integer, server_default='0', nullable=False),
        sa.Column('is_active', sa.Boolean, server_default='true', nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_categories_slug', 'categories', ['slug'], unique=True)

    op.create_table(
        'products',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('slug', sa.String(280), nullable=False),
        sa.Column('sku', sa.String(50), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('brand', sa.String(100), nullable=True),
        sa.Column('origin', sa.String(100), nullable=True),
        sa.Column('weight', sa.String(50), nullable=True),
        sa.Column('category_id', UUID(as_uuid=True), sa.ForeignKey('categories.id', ondelete='RESTRICT'), nullable=True),
        sa.Column('price', sa.Numeric(12, 2), nullable=False),
        sa.Column('discount', sa.Numeric(5, 2), server_default='0', nullable=False),
        sa.Column('stock', sa.Integer, server_default='0', nullable=False),
        sa.Column('images', JSONB, nullable=True),
        sa.Column('is_active', sa.Boolean, server_default='true', nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_products_slug', 'products', ['slug'], unique=True)
    op.create_index('ix_products_sku', 'products', ['sku'], unique=True)
    op.create_index('ix_product_category_active', 'products', ['category_id', 'is_active'])

    # ====================
    # ORDERS
    # ====================
    op.create_table(
        'orders',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('order_number', sa.String(30), nullable=False),
        sa.Column('user_id', UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('status', sa.String(20), server_default='PENDING', nullable=False),
        sa.Column('subtotal', sa.Numeric(12, 2), nullable=False),
        sa.Column('total', sa.Numeric(12, 2), nullable=False),
        sa.Column('shipping_address', JSONB, nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('payment_reference', sa.String(100), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('shipped_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_orders_order_number', 'orders', ['order_number'], unique=True)
    op.create_index('ix_orders_user_status', 'orders', ['user_id', 'status'])

    op.create_table(
        'order_items',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('order_id', UUID(as_uuid=True), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('product_id', UUID(as_uuid=True), sa.ForeignKey('products.id', ondelete='SET NULL'), nullable=True),
        sa.Column('product_name', sa.String(255), nullable=False),
        sa.Column('product_sku', sa.String(50), nullable=False),
        sa.Column('quantity', sa.Integer, nullable=False),
        sa.Column('unit_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('line_total', sa.Numeric(12, 2), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])

    op.create_table(
        'order_status_history',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('order_id', UUID(as_uuid=True), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('from_status', sa.String(20), nullable=True),
        sa.Column('to_status', sa.String(20), nullable=False),
        sa.Column('changed_by', UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    )
    op.create_index('ix_order_status_history_order_id', 'order_status_history', ['order_id'])

    op.create_table(
        'order_sequences',
        sa.Column('sequence_date', sa.String(8), primary_key=True, comment='YYYYMMDD'),
        sa.Column('current_number', sa.Integer, server_default='0', nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    )

    # ====================
    # PAYOUTS & COMMISSIONS
    # ====================
    op.create_table(
        'payouts',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('user_id', UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('status', sa.String(20), server_default='PENDING', nullable=False),
        sa.Column('bank_details', JSONB, nullable=False),
        sa.Column('admin_notes', sa.Text, nullable=True),
        sa.Column('reviewed_by_id', UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('payment_reference', sa.String(100), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_payouts_user_status', 'payouts', ['user_id', 'status'])

    op.create_table(
        'commissions',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('user_id', UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('from_user_id', UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('order_id', UUID(as_uuid=True), sa.ForeignKey('orders.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('level', sa.Integer, nullable=False),
        sa.Column('rate', sa.Numeric(5, 2), nullable=False),
        sa.Column('order_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('type', sa.String(20), server_default='REFERRAL', nullable=False),
        sa.Column('status', sa.String(20), server_default='PENDING', nullable=False),
        sa.Column('payout_id', UUID(as_uuid=True), sa.ForeignKey('payouts.id', ondelete='SET NULL'), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('order_id', 'user_id', 'level', name='uq_commission_order_user_level'),
    )
    op.create_index('ix_commissions_order_id', 'commissions', ['order_id'])
    op.create_index('ix_commissions_user_status', 'commissions', ['user_id', 'status'])
    op.create_index('ix_commissions_payout_id', 'commissions', ['payout_id'])

    # ====================
    # SETTINGS
    # ====================
    op.create_table(
        'commission_settings',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('level', sa.Integer, nullable=False, unique=True),
        sa.Column('percentage', sa.Numeric(5, 2), nullable=False),
        sa.Column('is_active', sa.Boolean, server_default='true', nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    )

    op.create_table(
        'system_settings',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('site_name', sa.String(200), server_default='Padmaaja Rasooi', nullable=True),
        sa.Column('site_description', sa.Text, nullable=True),
        sa.Column('support_email', sa.String(255), nullable=True),
        sa.Column('minimum_payout', sa.Numeric(12, 2), server_default='100.00', nullable=True),
        sa.Column('enable_referrals', sa.Boolean, server_default='true', nullable=True),
        sa.Column('enable_commissions', sa.Boolean, server_default='true', nullable=True),
        sa.Column('maintenance_mode', sa.Boolean, server_default='false', nullable=True),
        sa.Column('allow_registration', sa.Boolean, server_default='true', nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    )


def downgrade():
    """Drop all tables in reverse dependency order"""
    op.drop_table('system_settings')
    op.drop_table('commission_settings')
    op.drop_table('commissions')
    op.drop_table('payouts')
    op.drop_table('order_sequences')
    op.drop_table('order_status_history')
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_table('products')
    op.drop_table('categories')
    op.drop_table('users')
    op.drop_table('partnership_tiers')
