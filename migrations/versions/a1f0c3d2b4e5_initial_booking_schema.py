"""initial booking schema

Revision ID: a1f0c3d2b4e5
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'a1f0c3d2b4e5'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'courts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('surface_type', sa.String(length=60), nullable=True),
        sa.Column('lighting', sa.Boolean(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('deactivated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name', name='uq_courts_name')
    )

    op.create_table(
        'rate_rules',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('court_id', sa.Integer(), nullable=True),
        sa.Column('hourly_rate_cents', sa.Integer(), nullable=False),
        sa.Column('valid_days', sa.String(length=20), nullable=False),
        sa.Column('start_time', sa.String(length=5), nullable=False),
        sa.Column('end_time', sa.String(length=5), nullable=False),
        sa.Column('label', sa.String(length=120), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('hourly_rate_cents >= 0', name='ck_rate_rules_rate_positive'),
        sa.ForeignKeyConstraint(['court_id'], ['courts.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('rate_rules', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_rate_rules_court_id'), ['court_id'], unique=False)

    op.create_table(
        'court_blocks',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('court_id', sa.Integer(), nullable=False),
        sa.Column('start_at', sa.DateTime(), nullable=False),
        sa.Column('end_at', sa.DateTime(), nullable=False),
        sa.Column('reason', sa.String(length=160), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('end_at > start_at', name='ck_court_blocks_interval'),
        sa.ForeignKeyConstraint(['court_id'], ['courts.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('court_blocks', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_court_blocks_court_id'), ['court_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_court_blocks_start_at'), ['start_at'], unique=False)

    op.create_table(
        'reservations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('guest_name', sa.String(length=120), nullable=True),
        sa.Column('guest_phone', sa.String(length=30), nullable=True),
        sa.Column('start_at', sa.DateTime(), nullable=False),
        sa.Column('end_at', sa.DateTime(), nullable=False),
        sa.Column('total_cents', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('payment_strategy', sa.String(length=10), nullable=False),
        sa.Column('payment_method', sa.String(length=20), nullable=True),
        sa.Column('party_size', sa.Integer(), nullable=False),
        sa.Column('hold_expires_at', sa.DateTime(), nullable=True),
        sa.Column('series_id', sa.String(length=36), nullable=True),
        sa.Column('confirmed_at', sa.DateTime(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.Column('cancel_reason', sa.String(length=120), nullable=True),
        sa.Column('expired_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('end_at > start_at', name='ck_reservations_interval'),
        sa.CheckConstraint('total_cents >= 0', name='ck_reservations_total'),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('reservations', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_reservations_user_id'), ['user_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_reservations_start_at'), ['start_at'], unique=False)
        batch_op.create_index(batch_op.f('ix_reservations_end_at'), ['end_at'], unique=False)
        batch_op.create_index(batch_op.f('ix_reservations_status'), ['status'], unique=False)
        batch_op.create_index(batch_op.f('ix_reservations_hold_expires_at'), ['hold_expires_at'], unique=False)
        batch_op.create_index(batch_op.f('ix_reservations_series_id'), ['series_id'], unique=False)

    op.create_table(
        'reservation_courts',
        sa.Column('reservation_id', sa.Integer(), nullable=False),
        sa.Column('court_id', sa.Integer(), nullable=False),
        sa.Column('price_cents', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['court_id'], ['courts.id'], ),
        sa.ForeignKeyConstraint(['reservation_id'], ['reservations.id'], ),
        sa.PrimaryKeyConstraint('reservation_id', 'court_id')
    )
    with op.batch_alter_table('reservation_courts', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_reservation_courts_court_id'), ['court_id'], unique=False)

    op.create_table(
        'reservation_shares',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('reservation_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('guest_name', sa.String(length=120), nullable=True),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('paid', sa.Boolean(), nullable=False),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        sa.Column('reported_at', sa.DateTime(), nullable=True),
        sa.Column('proof_note', sa.String(length=255), nullable=True),
        sa.Column('checkout_session_id', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['reservation_id'], ['reservations.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('reservation_shares', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_reservation_shares_reservation_id'), ['reservation_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_reservation_shares_user_id'), ['user_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_reservation_shares_checkout_session_id'), ['checkout_session_id'], unique=True)


def downgrade():
    with op.batch_alter_table('reservation_shares', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_reservation_shares_checkout_session_id'))
        batch_op.drop_index(batch_op.f('ix_reservation_shares_user_id'))
        batch_op.drop_index(batch_op.f('ix_reservation_shares_reservation_id'))
    op.drop_table('reservation_shares')

    with op.batch_alter_table('reservation_courts', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_reservation_courts_court_id'))
    op.drop_table('reservation_courts')

    with op.batch_alter_table('reservations', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_reservations_series_id'))
        batch_op.drop_index(batch_op.f('ix_reservations_hold_expires_at'))
        batch_op.drop_index(batch_op.f('ix_reservations_status'))
        batch_op.drop_index(batch_op.f('ix_reservations_end_at'))
        batch_op.drop_index(batch_op.f('ix_reservations_start_at'))
        batch_op.drop_index(batch_op.f('ix_reservations_user_id'))
    op.drop_table('reservations')

    with op.batch_alter_table('court_blocks', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_court_blocks_start_at'))
        batch_op.drop_index(batch_op.f('ix_court_blocks_court_id'))
    op.drop_table('court_blocks')

    with op.batch_alter_table('rate_rules', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_rate_rules_court_id'))
    op.drop_table('rate_rules')

    op.drop_table('courts')
