"""Initial booking core schema

Revision ID: 0001
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps(updated: bool = True) -> list[sa.Column]:
    columns = [sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False)]
    if updated:
        columns.append(sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False))
    return columns


def upgrade() -> None:
    """Upgrade database schema."""
    # Create departures table
    op.create_table('departures',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('package_id', sa.String(length=64), nullable=True),
        sa.Column('departure_date', sa.Date(), nullable=False),
        sa.Column('return_date', sa.Date(), nullable=True),
        sa.Column('quota', sa.Integer(), nullable=False),
        sa.Column('booked_count', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('price_quad', sa.BigInteger(), nullable=True),
        sa.Column('price_triple', sa.BigInteger(), nullable=True),
        sa.Column('price_double', sa.BigInteger(), nullable=True),
        sa.Column('price_single', sa.BigInteger(), nullable=True),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('hotel_makkah_id', sa.String(length=64), nullable=True),
        sa.Column('hotel_madinah_id', sa.String(length=64), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('quota >= 1', name='ck_departure_quota_positive'),
        sa.CheckConstraint('booked_count >= 0', name='ck_departure_booked_count_non_negative'),
        sa.CheckConstraint('booked_count <= quota', name='ck_departure_booked_count_lte_quota'),
        sa.CheckConstraint('length(currency) = 3', name='ck_departure_currency_length'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_departures_package_id'), 'departures', ['package_id'], unique=False)
    op.create_index(op.f('ix_departures_departure_date'), 'departures', ['departure_date'], unique=False)
    op.create_index(op.f('ix_departures_status'), 'departures', ['status'], unique=False)

    # Create inventory_movements table
    op.create_table('inventory_movements',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('departure_id', sa.Uuid(), nullable=False),
        sa.Column('kind', sa.String(length=20), nullable=False),
        sa.Column('delta', sa.Integer(), nullable=False),
        sa.Column('booking_id', sa.Uuid(), nullable=True),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('actor', sa.String(length=255), nullable=False),
        sa.Column('quota_before', sa.Integer(), nullable=False),
        sa.Column('quota_after', sa.Integer(), nullable=False),
        sa.Column('booked_before', sa.Integer(), nullable=False),
        sa.Column('booked_after', sa.Integer(), nullable=False),
        *_timestamps(updated=False),
        sa.CheckConstraint('delta != 0', name='ck_inventory_movement_delta_nonzero'),
        sa.CheckConstraint('length(reason) > 0', name='ck_inventory_movement_reason_not_empty'),
        sa.CheckConstraint('length(actor) > 0', name='ck_inventory_movement_actor_not_empty'),
        sa.CheckConstraint('booked_after <= quota_after', name='ck_inventory_movement_booked_lte_quota'),
        sa.ForeignKeyConstraint(['departure_id'], ['departures.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_inventory_movements_departure_id'), 'inventory_movements', ['departure_id'], unique=False)
    op.create_index(op.f('ix_inventory_movements_booking_id'), 'inventory_movements', ['booking_id'], unique=False)
    op.create_index(op.f('ix_inventory_movements_created_at'), 'inventory_movements', ['created_at'], unique=False)

    # Create agents table
    op.create_table('agents',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('agent_code', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('commission_rate', sa.Numeric(precision=5, scale=2), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint('commission_rate >= 0', name='ck_agent_commission_rate_non_negative'),
        sa.CheckConstraint('commission_rate <= 100', name='ck_agent_commission_rate_max'),
        sa.CheckConstraint('length(agent_code) > 0', name='ck_agent_code_not_empty'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_agents_agent_code'), 'agents', ['agent_code'], unique=True)

    # Create agent_wallets table
    op.create_table('agent_wallets',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('agent_id', sa.Uuid(), nullable=False),
        sa.Column('balance', sa.BigInteger(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint('balance >= 0', name='ck_agent_wallet_balance_non_negative'),
        sa.ForeignKeyConstraint(['agent_id'], ['agents.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('agent_id')
    )

    # Create bookings table
    op.create_table('bookings',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('booking_code', sa.String(length=16), nullable=False),
        sa.Column('departure_id', sa.Uuid(), nullable=False),
        sa.Column('customer_id', sa.String(length=64), nullable=False),
        sa.Column('agent_id', sa.Uuid(), nullable=True),
        sa.Column('room_type', sa.String(length=20), nullable=False),
        sa.Column('total_pax', sa.Integer(), nullable=False),
        sa.Column('base_price', sa.BigInteger(), nullable=False),
        sa.Column('discount_amount', sa.BigInteger(), nullable=False),
        sa.Column('addons_price', sa.BigInteger(), nullable=False),
        sa.Column('total_price', sa.BigInteger(), nullable=False),
        sa.Column('paid_amount', sa.BigInteger(), nullable=False),
        sa.Column('remaining_amount', sa.BigInteger(), nullable=False),
        sa.Column('booking_status', sa.String(length=20), nullable=False),
        sa.Column('payment_status', sa.String(length=20), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint('total_pax > 0', name='ck_booking_total_pax_positive'),
        sa.CheckConstraint('total_price >= 0', name='ck_booking_total_price_non_negative'),
        sa.CheckConstraint('paid_amount >= 0', name='ck_booking_paid_amount_non_negative'),
        sa.CheckConstraint('remaining_amount >= 0', name='ck_booking_remaining_amount_non_negative'),
        sa.CheckConstraint('length(booking_code) > 0', name='ck_booking_code_not_empty'),
        sa.ForeignKeyConstraint(['departure_id'], ['departures.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['agent_id'], ['agents.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_bookings_booking_code'), 'bookings', ['booking_code'], unique=True)
    op.create_index(op.f('ix_bookings_departure_id'), 'bookings', ['departure_id'], unique=False)
    op.create_index(op.f('ix_bookings_customer_id'), 'bookings', ['customer_id'], unique=False)
    op.create_index(op.f('ix_bookings_agent_id'), 'bookings', ['agent_id'], unique=False)
    op.create_index(op.f('ix_bookings_booking_status'), 'bookings', ['booking_status'], unique=False)
    op.create_index(op.f('ix_bookings_payment_status'), 'bookings', ['payment_status'], unique=False)

    # Create booking_passengers table
    op.create_table('booking_passengers',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('booking_id', sa.Uuid(), nullable=False),
        sa.Column('departure_id', sa.Uuid(), nullable=False),
        sa.Column('customer_id', sa.String(length=64), nullable=False),
        sa.Column('full_name', sa.String(length=255), nullable=True),
        sa.Column('gender', sa.String(length=20), nullable=False),
        sa.Column('passenger_type', sa.String(length=20), nullable=False),
        sa.Column('room_preference', sa.String(length=20), nullable=False),
        sa.Column('is_main_passenger', sa.Boolean(), nullable=False),
        sa.Column('roommate_id', sa.Uuid(), nullable=True),
        sa.Column('room_number', sa.String(length=20), nullable=True),
        *_timestamps(updated=False),
        sa.CheckConstraint('roommate_id IS NULL OR roommate_id != id', name='ck_passenger_not_own_roommate'),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['departure_id'], ['departures.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['roommate_id'], ['booking_passengers.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_booking_passengers_booking_id'), 'booking_passengers', ['booking_id'], unique=False)
    op.create_index(op.f('ix_booking_passengers_departure_id'), 'booking_passengers', ['departure_id'], unique=False)
    op.create_index(op.f('ix_booking_passengers_customer_id'), 'booking_passengers', ['customer_id'], unique=False)

    # Create payments table
    op.create_table('payments',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('booking_id', sa.Uuid(), nullable=False),
        sa.Column('payment_code', sa.String(length=32), nullable=False),
        sa.Column('amount', sa.BigInteger(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('payment_method', sa.String(length=50), nullable=True),
        sa.Column('proof_url', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('verified_at', sa.DateTime(), nullable=True),
        sa.Column('verified_by', sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('amount > 0', name='ck_payment_amount_positive'),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_payments_booking_id'), 'payments', ['booking_id'], unique=False)
    op.create_index(op.f('ix_payments_payment_code'), 'payments', ['payment_code'], unique=True)
    op.create_index(op.f('ix_payments_status'), 'payments', ['status'], unique=False)

    # Create savings_plans table
    op.create_table('savings_plans',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('customer_id', sa.String(length=64), nullable=False),
        sa.Column('package_id', sa.String(length=64), nullable=True),
        sa.Column('plan_type', sa.String(length=20), nullable=False),
        sa.Column('target_amount', sa.BigInteger(), nullable=False),
        sa.Column('paid_amount', sa.BigInteger(), nullable=False),
        sa.Column('remaining_amount', sa.BigInteger(), nullable=False),
        sa.Column('monthly_amount', sa.BigInteger(), nullable=True),
        sa.Column('tenor_months', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint('target_amount > 0', name='ck_plan_target_amount_positive'),
        sa.CheckConstraint('paid_amount >= 0', name='ck_plan_paid_amount_non_negative'),
        sa.CheckConstraint('remaining_amount >= 0', name='ck_plan_remaining_amount_non_negative'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_savings_plans_customer_id'), 'savings_plans', ['customer_id'], unique=False)
    op.create_index(op.f('ix_savings_plans_status'), 'savings_plans', ['status'], unique=False)

    # Create plan_payments table
    op.create_table('plan_payments',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('plan_id', sa.Uuid(), nullable=False),
        sa.Column('payment_code', sa.String(length=32), nullable=False),
        sa.Column('amount', sa.BigInteger(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('payment_method', sa.String(length=50), nullable=True),
        sa.Column('proof_url', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('verified_at', sa.DateTime(), nullable=True),
        sa.Column('verified_by', sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('amount > 0', name='ck_plan_payment_amount_positive'),
        sa.ForeignKeyConstraint(['plan_id'], ['savings_plans.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_plan_payments_plan_id'), 'plan_payments', ['plan_id'], unique=False)
    op.create_index(op.f('ix_plan_payments_payment_code'), 'plan_payments', ['payment_code'], unique=True)
    op.create_index(op.f('ix_plan_payments_status'), 'plan_payments', ['status'], unique=False)

    # Create agent_commissions table
    op.create_table('agent_commissions',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('agent_id', sa.Uuid(), nullable=False),
        sa.Column('booking_id', sa.Uuid(), nullable=False),
        sa.Column('commission_amount', sa.BigInteger(), nullable=False),
        sa.Column('commission_rate', sa.Numeric(precision=5, scale=2), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        sa.Column('paid_by', sa.String(length=255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('commission_amount >= 0', name='ck_commission_amount_non_negative'),
        sa.ForeignKeyConstraint(['agent_id'], ['agents.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('booking_id')
    )
    op.create_index(op.f('ix_agent_commissions_agent_id'), 'agent_commissions', ['agent_id'], unique=False)
    op.create_index(op.f('ix_agent_commissions_status'), 'agent_commissions', ['status'], unique=False)

    # Create room_assignments table
    op.create_table('room_assignments',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('departure_id', sa.Uuid(), nullable=False),
        sa.Column('hotel_id', sa.String(length=64), nullable=False),
        sa.Column('room_number', sa.String(length=20), nullable=False),
        sa.Column('room_type', sa.String(length=20), nullable=False),
        sa.Column('capacity', sa.Integer(), nullable=False),
        sa.Column('floor', sa.Integer(), nullable=True),
        sa.Column('occupant_count', sa.Integer(), nullable=False),
        sa.Column('gender', sa.String(length=20), nullable=True),
        *_timestamps(updated=False),
        sa.CheckConstraint('capacity BETWEEN 1 AND 4', name='ck_room_capacity_range'),
        sa.CheckConstraint('occupant_count >= 0', name='ck_room_occupant_count_non_negative'),
        sa.CheckConstraint('occupant_count <= capacity', name='ck_room_occupant_count_lte_capacity'),
        sa.ForeignKeyConstraint(['departure_id'], ['departures.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('departure_id', 'hotel_id', 'room_number', name='uq_room_departure_hotel_number')
    )
    op.create_index(op.f('ix_room_assignments_departure_id'), 'room_assignments', ['departure_id'], unique=False)

    # Create room_occupants table
    op.create_table('room_occupants',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('room_assignment_id', sa.Uuid(), nullable=False),
        sa.Column('departure_id', sa.Uuid(), nullable=False),
        sa.Column('hotel_id', sa.String(length=64), nullable=False),
        sa.Column('customer_id', sa.String(length=64), nullable=False),
        sa.Column('gender', sa.String(length=20), nullable=False),
        sa.Column('bed_number', sa.Integer(), nullable=True),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(['room_assignment_id'], ['room_assignments.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint(
            'departure_id', 'hotel_id', 'customer_id', name='uq_occupant_departure_hotel_customer'
        )
    )
    op.create_index(op.f('ix_room_occupants_room_assignment_id'), 'room_occupants', ['room_assignment_id'], unique=False)

    # Create idempotency_records table
    op.create_table('idempotency_records',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('idempotency_key', sa.String(length=255), nullable=False),
        sa.Column('method', sa.String(length=100), nullable=False),
        sa.Column('request_body_hash', sa.String(length=64), nullable=False),
        sa.Column('response_status_code', sa.Integer(), nullable=False),
        sa.Column('response_body', sa.Text(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        *_timestamps(updated=False),
        sa.CheckConstraint('length(idempotency_key) > 0', name='ck_idempotency_key_not_empty'),
        sa.CheckConstraint('length(request_body_hash) = 64', name='ck_idempotency_hash_length'),
        sa.CheckConstraint('response_status_code BETWEEN 100 AND 599', name='ck_idempotency_status_code_valid'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('idempotency_key', 'method', name='uq_idempotency_key_method')
    )
    op.create_index(op.f('ix_idempotency_records_idempotency_key'), 'idempotency_records', ['idempotency_key'], unique=False)
    op.create_index(op.f('ix_idempotency_records_method'), 'idempotency_records', ['method'], unique=False)
    op.create_index(op.f('ix_idempotency_records_expires_at'), 'idempotency_records', ['expires_at'], unique=False)


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_table('idempotency_records')
    op.drop_table('room_occupants')
    op.drop_table('room_assignments')
    op.drop_table('agent_commissions')
    op.drop_table('plan_payments')
    op.drop_table('savings_plans')
    op.drop_table('payments')
    op.drop_table('booking_passengers')
    op.drop_table('bookings')
    op.drop_table('agent_wallets')
    op.drop_table('agents')
    op.drop_table('inventory_movements')
    op.drop_table('departures')
