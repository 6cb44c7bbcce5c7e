"""Baseline scheduling schema

Revision ID: 202610180000
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '202610180000'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Skip tables an earlier Base.metadata.create_all() already created
    conn = op.get_bind()
    inspector = sa.inspect(conn)
    existing_tables = inspector.get_table_names()

    if 'professionals' not in existing_tables:
        op.create_table('professionals',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('kind', sa.String(length=20), nullable=False),
        sa.Column('display_name', sa.String(length=255), nullable=False),
        sa.Column('consultation_duration_minutes', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.CheckConstraint("kind IN ('doctor', 'therapist')", name='check_valid_professional_kind'),
        sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_professionals_id'), 'professionals', ['id'], unique=False)
        op.create_index('idx_professionals_kind_active', 'professionals', ['kind', 'is_active'], unique=False)

    if 'patients' not in existing_tables:
        op.create_table('patients',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('full_name', sa.String(length=255), nullable=False),
        sa.Column('therapies_since_consult', sa.Integer(), nullable=False),
        sa.Column('last_consultation_date', sa.Date(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_patients_id'), 'patients', ['id'], unique=False)

    if 'appointments' not in existing_tables:
        op.create_table('appointments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('patient_id', sa.Integer(), nullable=False),
        sa.Column('patient_name', sa.String(length=255), nullable=False),
        sa.Column('professional_id', sa.Integer(), nullable=False),
        sa.Column('professional_kind', sa.String(length=20), nullable=False),
        sa.Column('professional_name', sa.String(length=255), nullable=False),
        sa.Column('kind', sa.String(length=20), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('time', sa.String(length=5), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('canceled_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('completed_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.CheckConstraint("kind IN ('consultation', 'therapy')", name='check_valid_appointment_kind'),
        sa.CheckConstraint(
            "status IN ('scheduled', 'completed', 'no-show', 'cancelled')",
            name='check_valid_appointment_status'
        ),
        sa.ForeignKeyConstraint(['patient_id'], ['patients.id']),
        sa.ForeignKeyConstraint(['professional_id'], ['professionals.id']),
        sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_appointments_id'), 'appointments', ['id'], unique=False)
        op.create_index('idx_appointments_patient', 'appointments', ['patient_id'], unique=False)
        op.create_index('idx_appointments_professional_date', 'appointments', ['professional_id', 'date'], unique=False)
        op.create_index(
            'idx_appointments_professional_date_time', 'appointments',
            ['professional_id', 'date', 'time'], unique=False
        )
        op.create_index('idx_appointments_status', 'appointments', ['status'], unique=False)

    if 'notifications' not in existing_tables:
        op.create_table('notifications',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('recipient_id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=50), nullable=False),
        sa.Column('message', sa.String(length=500), nullable=False),
        sa.Column('read', sa.Boolean(), nullable=False),
        sa.Column('saved', sa.Boolean(), nullable=False),
        sa.Column('timestamp', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('appointment_id', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['recipient_id'], ['professionals.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['appointment_id'], ['appointments.id']),
        sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_notifications_id'), 'notifications', ['id'], unique=False)
        op.create_index('idx_notifications_recipient_read', 'notifications', ['recipient_id', 'read'], unique=False)


def downgrade() -> None:
    op.drop_index('idx_notifications_recipient_read', table_name='notifications')
    op.drop_index(op.f('ix_notifications_id'), table_name='notifications')
    op.drop_table('notifications')

    op.drop_index('idx_appointments_status', table_name='appointments')
    op.drop_index('idx_appointments_professional_date_time', table_name='appointments')
    op.drop_index('idx_appointments_professional_date', table_name='appointments')
    op.drop_index('idx_appointments_patient', table_name='appointments')
    op.drop_index(op.f('ix_appointments_id'), table_name='appointments')
    op.drop_table('appointments')

    op.drop_index(op.f('ix_patients_id'), table_name='patients')
    op.drop_table('patients')

    op.drop_index('idx_professionals_kind_active', table_name='professionals')
    op.drop_index(op.f('ix_professionals_id'), table_name='professionals')
    op.drop_table('professionals')
