"""create_orders_tables

Revision ID: 3f9c2a71d0b4
Revises:
Create Date: 2026-01-04 09:12:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3f9c2a71d0b4'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ORDER_STATUSES = (
    'new', 'waiting_payment', 'paid', 'assigned', 'picked_up', 'on_delivery',
    'delivered', 'cancelled', 'refunded', 'failed', 'returned',
)

order_status_enum = sa.Enum(*ORDER_STATUSES, name='order_status_enum')
audit_entity_type_enum = sa.Enum(
    'order', 'payment_confirmation', name='order_audit_entity_type_enum'
)
json_type = sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    """Upgrade schema - Add order lifecycle tables."""

    op.create_table(
        'buyer_profiles',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('full_name', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=50), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id'),
    )

    op.create_table(
        'courier_profiles',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('full_name', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=50), nullable=True),
        sa.Column('vehicle_type', sa.String(length=50), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id'),
    )

    op.create_table(
        'products',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('price', sa.Numeric(14, 2), nullable=False),
        sa.Column('hpp', sa.Numeric(14, 2), server_default='0', nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('price >= 0', name='product_price_non_negative'),
        sa.CheckConstraint('hpp >= 0', name='product_hpp_non_negative'),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'orders',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('order_number', sa.String(length=30), nullable=False),
        sa.Column('buyer_id', sa.Uuid(), nullable=False),
        sa.Column('courier_id', sa.Uuid(), nullable=True),
        sa.Column('status', order_status_enum, server_default='new', nullable=False),
        sa.Column('subtotal', sa.Numeric(14, 2), nullable=False),
        sa.Column('shipping_cost', sa.Numeric(14, 2), server_default='0', nullable=False),
        sa.Column('admin_fee', sa.Numeric(14, 2), server_default='0', nullable=False),
        sa.Column('total', sa.Numeric(14, 2), nullable=False),
        sa.Column('total_hpp', sa.Numeric(14, 2), server_default='0', nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('assigned_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('picked_up_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            'subtotal >= 0 AND shipping_cost >= 0 AND admin_fee >= 0 '
            'AND total >= 0 AND total_hpp >= 0',
            name='order_amounts_non_negative',
        ),
        sa.CheckConstraint(
            'total = subtotal + shipping_cost + admin_fee',
            name='order_total_matches_parts',
        ),
        sa.ForeignKeyConstraint(['buyer_id'], ['buyer_profiles.id']),
        sa.ForeignKeyConstraint(['courier_id'], ['courier_profiles.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_orders_order_number', 'orders', ['order_number'], unique=True)
    op.create_index('ix_orders_buyer_id', 'orders', ['buyer_id'])
    op.create_index('ix_orders_courier_id', 'orders', ['courier_id'])
    op.create_index('ix_orders_status_courier', 'orders', ['status', 'courier_id'])

    op.create_table(
        'order_items',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('order_id', sa.Uuid(), nullable=False),
        sa.Column('product_id', sa.Uuid(), nullable=False),
        sa.Column('product_name', sa.String(length=255), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('price_at_order', sa.Numeric(14, 2), nullable=False),
        sa.Column('hpp_at_order', sa.Numeric(14, 2), server_default='0', nullable=False),
        sa.Column('subtotal', sa.Numeric(14, 2), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('quantity > 0', name='order_item_positive_quantity'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])

    op.create_table(
        'order_addresses',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('order_id', sa.Uuid(), nullable=False),
        sa.Column('recipient_name', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=50), nullable=False),
        sa.Column('address', sa.Text(), nullable=False),
        sa.Column('landmark', sa.String(length=255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_id'),
    )

    op.create_table(
        'payment_confirmations',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('order_id', sa.Uuid(), nullable=False),
        sa.Column('amount', sa.Numeric(14, 2), nullable=False),
        sa.Column('proof_image_url', sa.String(length=1024), nullable=False),
        sa.Column('bank_name', sa.String(length=100), nullable=True),
        sa.Column('account_number', sa.String(length=50), nullable=True),
        sa.Column('transfer_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_confirmed', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('confirmed_by', sa.String(length=255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'ix_payment_confirmations_order_id', 'payment_confirmations', ['order_id']
    )

    op.create_table(
        'delivery_proofs',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('order_id', sa.Uuid(), nullable=False),
        sa.Column('photo_url', sa.String(length=1024), nullable=False),
        sa.Column('recipient_signature', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_delivery_proofs_order_id', 'delivery_proofs', ['order_id'])

    op.create_table(
        'order_status_history',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('order_id', sa.Uuid(), nullable=False),
        sa.Column('status', order_status_enum, nullable=False),
        sa.Column('changed_by', sa.String(length=255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'ix_order_status_history_order_id', 'order_status_history', ['order_id']
    )

    op.create_table(
        'order_audit_logs',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('entity_type', audit_entity_type_enum, nullable=False),
        sa.Column('entity_id', sa.Uuid(), nullable=False),
        sa.Column('action', sa.String(length=50), nullable=False),
        sa.Column('old_value', json_type, nullable=True),
        sa.Column('new_value', json_type, nullable=True),
        sa.Column('performed_by', sa.String(length=255), nullable=False),
        sa.Column('performed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'ix_order_audit_logs_entity', 'order_audit_logs', ['entity_type', 'entity_id']
    )
    op.create_index(
        'ix_order_audit_logs_performed_at', 'order_audit_logs', ['performed_at']
    )


def downgrade() -> None:
    """Downgrade schema - Drop order lifecycle tables."""
    op.drop_index('ix_order_audit_logs_performed_at', table_name='order_audit_logs')
    op.drop_index('ix_order_audit_logs_entity', table_name='order_audit_logs')
    op.drop_table('order_audit_logs')
    op.drop_index('ix_order_status_history_order_id', table_name='order_status_history')
    op.drop_table('order_status_history')
    op.drop_index('ix_delivery_proofs_order_id', table_name='delivery_proofs')
    op.drop_table('delivery_proofs')
    op.drop_index(
        'ix_payment_confirmations_order_id', table_name='payment_confirmations'
    )
    op.drop_table('payment_confirmations')
    op.drop_table('order_addresses')
    op.drop_index('ix_order_items_order_id', table_name='order_items')
    op.drop_table('order_items')
    op.drop_index('ix_orders_status_courier', table_name='orders')
    op.drop_index('ix_orders_courier_id', table_name='orders')
    op.drop_index('ix_orders_buyer_id', table_name='orders')
    op.drop_index('ix_orders_order_number', table_name='orders')
    op.drop_table('orders')
    op.drop_table('products')
    op.drop_table('courier_profiles')
    op.drop_table('buyer_profiles')
    audit_entity_type_enum.drop(op.get_bind(), checkfirst=True)
    order_status_enum.drop(op.get_bind(), checkfirst=True)
