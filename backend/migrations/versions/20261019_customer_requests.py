"""Customer change and refund requests

Revision ID: 20261019_customer_requests
Revises: 20261018_booking_core
Create Date: 2026-10-19

This migration adds:
1. booking_change_requests (cancel / reschedule requests awaiting review)
2. refund_requests (refund requests against completed payments)
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_customer_requests'
down_revision = '20261018_booking_core'
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


def _review_columns():
    return [
        sa.Column('reviewed_by', sa.String(length=64), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('admin_notes', sa.String(length=1000), nullable=True),
        sa.Column('rejection_reason', sa.String(length=500), nullable=True),
    ]


def upgrade():
    op.create_table('booking_change_requests',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('request_reference', sa.String(length=16), nullable=False),
        sa.Column('booking_id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('request_type', sa.String(length=16), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('reason', sa.String(length=500), nullable=False),
        sa.Column('new_booking_date', sa.Date(), nullable=True),
        sa.Column('new_start_time', sa.String(length=5), nullable=True),
        *_review_columns(),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_audit_columns(),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('request_reference', name='uq_booking_change_requests_reference'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('booking_change_requests', schema=None) as batch_op:
        batch_op.create_index('ix_booking_change_requests_booking_status', ['booking_id', 'status'], unique=False)
        batch_op.create_index(batch_op.f('ix_booking_change_requests_customer_id'), ['customer_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_booking_change_requests_status'), ['status'], unique=False)
        batch_op.create_index(batch_op.f('ix_booking_change_requests_is_active'), ['is_active'], unique=False)

    op.create_table('refund_requests',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('request_reference', sa.String(length=16), nullable=False),
        sa.Column('transaction_id', sa.Integer(), nullable=False),
        sa.Column('booking_id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=500), nullable=False),
        sa.Column('refund_transaction_id', sa.Integer(), nullable=True),
        *_review_columns(),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_audit_columns(),
        sa.ForeignKeyConstraint(['transaction_id'], ['transactions.id'], ),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ),
        sa.ForeignKeyConstraint(['refund_transaction_id'], ['transactions.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('request_reference', name='uq_refund_requests_reference'),
        sa.CheckConstraint('amount_cents > 0', name='ck_refund_requests_amount_positive'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('refund_requests', schema=None) as batch_op:
        batch_op.create_index('ix_refund_requests_transaction_status', ['transaction_id', 'status'], unique=False)
        batch_op.create_index(batch_op.f('ix_refund_requests_booking_id'), ['booking_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_refund_requests_customer_id'), ['customer_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_refund_requests_status'), ['status'], unique=False)
        batch_op.create_index(batch_op.f('ix_refund_requests_is_active'), ['is_active'], unique=False)


def downgrade():
    op.drop_table('refund_requests')
    op.drop_table('booking_change_requests')
