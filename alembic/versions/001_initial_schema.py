"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-16 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Create triage_sessions table
    op.create_table(
        'triage_sessions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('channel_id', sa.String(), nullable=False),
        sa.Column('agent_handle', sa.String(), nullable=True),
        sa.Column('pet_name', sa.String(), nullable=False),
        sa.Column('pet_category', sa.String(), nullable=False),
        sa.Column('pet_age', sa.String(), nullable=True),
        sa.Column('pet_emoji', sa.String(), nullable=True),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('ended_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('duration_seconds', sa.Integer(), nullable=False),
        sa.Column('urgency', sa.String(), nullable=False),
        sa.Column('summary', sa.JSON(), nullable=False),
        sa.Column('is_fallback', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_triage_sessions_id'), 'triage_sessions', ['id'], unique=False)
    op.create_index(
        op.f('ix_triage_sessions_channel_id'), 'triage_sessions', ['channel_id'], unique=False
    )

    # Create intake_turns table
    op.create_table(
        'intake_turns',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('session_id', sa.Integer(), nullable=False),
        sa.Column('ordinal', sa.Integer(), nullable=False),
        sa.Column('prompt', sa.Text(), nullable=False),
        sa.Column('response', sa.Text(), nullable=False),
        sa.Column('captured_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['session_id'], ['triage_sessions.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_intake_turns_id'), 'intake_turns', ['id'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_intake_turns_id'), table_name='intake_turns')
    op.drop_table('intake_turns')
    op.drop_index(op.f('ix_triage_sessions_channel_id'), table_name='triage_sessions')
    op.drop_index(op.f('ix_triage_sessions_id'), table_name='triage_sessions')
    op.drop_table('triage_sessions')
