"""Booking core: catalog, photographers, promotions, bookings, transactions

Revision ID: 20261018_booking_core
Revises:
Create Date: 2026-10-18

This migration adds:
1. Catalog read models (customers, services, packages, package_items)
2. Photographers with weekly day settings, windows and date overrides
3. Promotions with the usage counter
4. Bookings, booking lines, booking events and per-day write locks
5. Transactions (payments and refunds)
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261018_booking_core'
down_revision = None
branch_labels = None
depends_on = None


def _audit_columns():
    return [
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_by', sa.String(length=64), nullable=True),
        sa.Column('updated_by', sa.String(length=64), nullable=True),
        sa.Column('deleted_by', sa.String(length=64), nullable=True),
        sa.Column('restored_by', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('restored_at', sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade():
    # ==========================================================================
    # 1. CATALOG
    # ==========================================================================
    op.create_table('customers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('first_name', sa.String(length=128), nullable=False),
        sa.Column('last_name', sa.String(length=128), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('customers', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_customers_is_active'), ['is_active'], unique=False)

    op.create_table('services',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('category', sa.String(length=64), nullable=True),
        sa.Column('price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('duration_minutes', sa.Integer(), nullable=True),
        sa.Column('is_available', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('services', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_services_is_active'), ['is_active'], unique=False)

    op.create_table('packages',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('packages', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_packages_is_active'), ['is_active'], unique=False)

    op.create_table('package_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('package_id', sa.Integer(), nullable=False),
        sa.Column('service_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['package_id'], ['packages.id'], ),
        sa.ForeignKeyConstraint(['service_id'], ['services.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('package_items', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_package_items_package_id'), ['package_id'], unique=False)

    # ==========================================================================
    # 2. PHOTOGRAPHERS
    # ==========================================================================
    op.create_table('photographers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('booking_lead_time_hours', sa.Integer(), nullable=False, server_default='0'),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('photographers', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_photographers_is_active'), ['is_active'], unique=False)

    op.create_table('photographer_day_settings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('photographer_id', sa.Integer(), nullable=False),
        sa.Column('day_of_week', sa.Integer(), nullable=False),
        sa.Column('accepts_bookings', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('notes', sa.String(length=200), nullable=True),
        sa.ForeignKeyConstraint(['photographer_id'], ['photographers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('photographer_id', 'day_of_week', name='uq_photographer_day_settings_day'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('photographer_day_settings', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_photographer_day_settings_photographer_id'), ['photographer_id'], unique=False)

    op.create_table('photographer_schedule_windows',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('photographer_id', sa.Integer(), nullable=False),
        sa.Column('day_of_week', sa.Integer(), nullable=False),
        sa.Column('start_time', sa.String(length=5), nullable=False),
        sa.Column('end_time', sa.String(length=5), nullable=False),
        sa.ForeignKeyConstraint(['photographer_id'], ['photographers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('photographer_schedule_windows', schema=None) as batch_op:
        batch_op.create_index('ix_photographer_schedule_windows_day', ['photographer_id', 'day_of_week'], unique=False)

    op.create_table('photographer_date_overrides',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('photographer_id', sa.Integer(), nullable=False),
        sa.Column('override_date', sa.Date(), nullable=False),
        sa.Column('is_available', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('reason', sa.String(length=200), nullable=True),
        sa.Column('notes', sa.String(length=500), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['photographer_id'], ['photographers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('photographer_id', 'override_date', name='uq_photographer_overrides_date'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('photographer_date_overrides', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_photographer_date_overrides_photographer_id'), ['photographer_id'], unique=False)

    op.create_table('photographer_override_windows',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('override_id', sa.Integer(), nullable=False),
        sa.Column('start_time', sa.String(length=5), nullable=False),
        sa.Column('end_time', sa.String(length=5), nullable=False),
        sa.ForeignKeyConstraint(['override_id'], ['photographer_date_overrides.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('photographer_override_windows', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_photographer_override_windows_override_id'), ['override_id'], unique=False)

    # ==========================================================================
    # 3. PROMOTIONS
    # ==========================================================================
    op.create_table('promotions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('promo_code', sa.String(length=20), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column('promo_type', sa.String(length=16), nullable=False),
        sa.Column('discount_type', sa.String(length=16), nullable=False),
        sa.Column('discount_value', sa.Integer(), nullable=False),
        sa.Column('min_advance_days', sa.Integer(), nullable=True),
        sa.Column('min_booking_amount_cents', sa.Integer(), nullable=True),
        sa.Column('max_discount_amount_cents', sa.Integer(), nullable=True),
        sa.Column('valid_from', sa.DateTime(timezone=True), nullable=True),
        sa.Column('valid_until', sa.DateTime(timezone=True), nullable=True),
        sa.Column('usage_limit', sa.Integer(), nullable=True),
        sa.Column('usage_count', sa.Integer(), nullable=False, server_default='0'),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('promo_code', name='uq_promotions_code'),
        sa.CheckConstraint('usage_limit IS NULL OR usage_count <= usage_limit', name='ck_promotions_usage_within_limit'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('promotions', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_promotions_is_active'), ['is_active'], unique=False)

    # ==========================================================================
    # 4. BOOKINGS
    # ==========================================================================
    op.create_table('bookings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('booking_reference', sa.String(length=16), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('package_id', sa.Integer(), nullable=True),
        sa.Column('photographer_id', sa.Integer(), nullable=True),
        sa.Column('promo_id', sa.Integer(), nullable=True),
        sa.Column('booking_date', sa.Date(), nullable=False),
        sa.Column('start_time', sa.String(length=5), nullable=False),
        sa.Column('end_time', sa.String(length=5), nullable=False),
        sa.Column('session_duration_minutes', sa.Integer(), nullable=False),
        sa.Column('location', sa.String(length=200), nullable=False),
        sa.Column('theme', sa.String(length=50), nullable=True),
        sa.Column('special_requests', sa.String(length=500), nullable=True),
        sa.Column('is_customized', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('customization_notes', sa.String(length=500), nullable=True),
        sa.Column('photographer_notes', sa.String(length=1000), nullable=True),
        sa.Column('total_amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('discount_amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('final_amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_reason', sa.String(length=200), nullable=True),
        sa.Column('rescheduled_from', sa.Date(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_audit_columns(),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ),
        sa.ForeignKeyConstraint(['package_id'], ['packages.id'], ),
        sa.ForeignKeyConstraint(['photographer_id'], ['photographers.id'], ),
        sa.ForeignKeyConstraint(['promo_id'], ['promotions.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('booking_reference', name='uq_bookings_reference'),
        sa.CheckConstraint('discount_amount_cents >= 0', name='ck_bookings_discount_nonneg'),
        sa.CheckConstraint('discount_amount_cents <= total_amount_cents', name='ck_bookings_discount_le_total'),
        sa.CheckConstraint('final_amount_cents >= 0', name='ck_bookings_final_nonneg'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('bookings', schema=None) as batch_op:
        batch_op.create_index('ix_bookings_photographer_date', ['photographer_id', 'booking_date'], unique=False)
        batch_op.create_index('ix_bookings_customer_status', ['customer_id', 'status'], unique=False)
        batch_op.create_index(batch_op.f('ix_bookings_customer_id'), ['customer_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_bookings_status'), ['status'], unique=False)
        batch_op.create_index(batch_op.f('ix_bookings_is_active'), ['is_active'], unique=False)

    op.create_table('booking_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('booking_id', sa.Integer(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('service_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('price_per_unit_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('line_total_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('duration_minutes', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ),
        sa.ForeignKeyConstraint(['service_id'], ['services.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('quantity >= 1', name='ck_booking_lines_quantity'),
        sa.CheckConstraint('price_per_unit_cents >= 0', name='ck_booking_lines_price'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('booking_lines', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_booking_lines_booking_id'), ['booking_id'], unique=False)

    op.create_table('photographer_day_locks',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('photographer_id', sa.Integer(), nullable=False),
        sa.Column('lock_date', sa.Date(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['photographer_id'], ['photographers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('photographer_id', 'lock_date', name='uq_photographer_day_locks_key'),
        sqlite_autoincrement=True
    )

    # ==========================================================================
    # 5. TRANSACTIONS
    # ==========================================================================
    op.create_table('transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transaction_reference', sa.String(length=16), nullable=False),
        sa.Column('booking_id', sa.Integer(), nullable=False),
        sa.Column('transaction_type', sa.String(length=16), nullable=False),
        sa.Column('payment_method', sa.String(length=16), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('reference_number', sa.String(length=64), nullable=True),
        sa.Column('receipt_url', sa.String(length=512), nullable=True),
        sa.Column('notes', sa.String(length=500), nullable=True),
        sa.Column('original_transaction_id', sa.Integer(), nullable=True),
        sa.Column('refund_transaction_id', sa.Integer(), nullable=True),
        sa.Column('refund_reason', sa.String(length=200), nullable=True),
        sa.Column('payment_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('verified_by', sa.String(length=64), nullable=True),
        sa.Column('verified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('failure_reason', sa.String(length=200), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_audit_columns(),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ),
        sa.ForeignKeyConstraint(['original_transaction_id'], ['transactions.id'], ),
        sa.ForeignKeyConstraint(['refund_transaction_id'], ['transactions.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('transaction_reference', name='uq_transactions_reference'),
        sa.CheckConstraint('amount_cents > 0', name='ck_transactions_amount_positive'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('transactions', schema=None) as batch_op:
        batch_op.create_index('ix_transactions_booking_status', ['booking_id', 'status'], unique=False)
        batch_op.create_index(batch_op.f('ix_transactions_status'), ['status'], unique=False)
        batch_op.create_index(batch_op.f('ix_transactions_original_transaction_id'), ['original_transaction_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_transactions_is_active'), ['is_active'], unique=False)

    op.create_table('booking_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('booking_id', sa.Integer(), nullable=False),
        sa.Column('event_type', sa.String(length=32), nullable=False),
        sa.Column('from_status', sa.String(length=16), nullable=True),
        sa.Column('to_status', sa.String(length=16), nullable=True),
        sa.Column('actor_id', sa.String(length=64), nullable=True),
        sa.Column('transaction_id', sa.Integer(), nullable=True),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ),
        sa.ForeignKeyConstraint(['transaction_id'], ['transactions.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('booking_events', schema=None) as batch_op:
        batch_op.create_index('ix_booking_events_booking_occurred', ['booking_id', 'occurred_at'], unique=False)


def downgrade():
    # Drop tables in reverse order of creation (respect foreign keys)
    op.drop_table('booking_events')
    op.drop_table('transactions')
    op.drop_table('photographer_day_locks')
    op.drop_table('booking_lines')
    op.drop_table('bookings')
    op.drop_table('promotions')
    op.drop_table('photographer_override_windows')
    op.drop_table('photographer_date_overrides')
    op.drop_table('photographer_schedule_windows')
    op.drop_table('photographer_day_settings')
    op.drop_table('photographers')
    op.drop_table('package_items')
    op.drop_table('packages')
    op.drop_table('services')
    op.drop_table('customers')
