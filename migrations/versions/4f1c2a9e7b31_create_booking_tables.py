"""create_booking_tables

Revision ID: 4f1c2a9e7b31
Revises:
Create Date: 2026-10-19 09:12:44.318204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '4f1c2a9e7b31'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


ENUMS = {
    'user_role': ('customer', 'technician', 'staff', 'admin'),
    'service_type': ('residential', 'commercial', 'termite', 'rodent', 'insect', 'eco-friendly'),
    'property_size': ('small', 'medium', 'large', 'commercial'),
    'time_slot': ('morning', 'afternoon', 'evening'),
    'booking_status': (
        'pending', 'confirmed', 'assigned', 'in-progress',
        'completed', 'cancellation_requested', 'canceled',
    ),
    'cancellation_status': ('pending', 'approved', 'rejected'),
    'contact_status': ('new', 'contacted', 'resolved'),
}


def _enum(name: str) -> postgresql.ENUM:
    # Types are created once up front; booking_status is shared by two tables
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def _timestamps() -> list:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    """Upgrade schema."""
    bind = op.get_bind()
    for name, values in ENUMS.items():
        postgresql.ENUM(*values, name=name).create(bind, checkfirst=True)

    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=20), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('role', _enum('user_role'), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_role', 'users', ['role'])

    op.create_table(
        'bookings',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('customer_id', sa.Uuid(), nullable=True),
        sa.Column('customer_name', sa.String(length=255), nullable=False),
        sa.Column('customer_email', sa.String(length=255), nullable=False),
        sa.Column('customer_phone', sa.String(length=20), nullable=False),
        sa.Column('service_type', _enum('service_type'), nullable=False),
        sa.Column('property_size', _enum('property_size'), nullable=False),
        sa.Column('scheduled_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('time_slot', _enum('time_slot'), nullable=True),
        sa.Column('address_street', sa.String(length=255), nullable=False),
        sa.Column('address_city', sa.String(length=100), nullable=False),
        sa.Column('address_state', sa.String(length=100), nullable=False),
        sa.Column('address_postal_code', sa.String(length=4), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('status', _enum('booking_status'), nullable=False),
        sa.Column('technician_id', sa.Uuid(), nullable=True),
        sa.Column('price', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('admin_note', sa.Text(), nullable=True),
        sa.Column('completion_notes', sa.Text(), nullable=True),
        sa.Column('customer_rating', sa.Integer(), nullable=True),
        sa.Column('customer_feedback', sa.Text(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint('price IS NULL OR price >= 0', name='booking_price_non_negative'),
        sa.CheckConstraint(
            'customer_rating IS NULL OR (customer_rating >= 1 AND customer_rating <= 5)',
            name='booking_rating_range',
        ),
        sa.ForeignKeyConstraint(['customer_id'], ['users.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['technician_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    for column in ('customer_id', 'customer_email', 'service_type', 'scheduled_at',
                   'address_postal_code', 'status', 'technician_id', 'created_at'):
        op.create_index(f'ix_bookings_{column}', 'bookings', [column])

    op.create_table(
        'cancellation_requests',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('booking_id', sa.Uuid(), nullable=False),
        sa.Column('requested_by', sa.Uuid(), nullable=True),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('status', _enum('cancellation_status'), nullable=False),
        sa.Column('previous_booking_status', _enum('booking_status'), nullable=False),
        sa.Column('processed_by', sa.Uuid(), nullable=True),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('admin_note', sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['requested_by'], ['users.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['processed_by'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_cancellation_requests_booking_id', 'cancellation_requests', ['booking_id'])
    op.create_index('ix_cancellation_requests_status', 'cancellation_requests', ['status'])
    # At most one pending request per booking
    op.create_index(
        'uq_cancellation_requests_one_pending',
        'cancellation_requests',
        ['booking_id'],
        unique=True,
        postgresql_where=sa.text("status = 'pending'"),
    )

    op.create_table(
        'contacts',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=20), nullable=True),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('status', _enum('contact_status'), nullable=False),
        sa.Column('assigned_to', sa.Uuid(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['assigned_to'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    for column in ('email', 'status', 'assigned_to', 'created_at'):
        op.create_index(f'ix_contacts_{column}', 'contacts', [column])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('contacts')
    op.drop_table('cancellation_requests')
    op.drop_table('bookings')
    op.drop_table('users')

    bind = op.get_bind()
    for name in reversed(list(ENUMS)):
        postgresql.ENUM(name=name).drop(bind, checkfirst=True)
