"""workout pipeline schema

Revision ID: 001
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    op.create_table(
        'athlete_profile',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('display_name', sa.Text(), nullable=True),
        sa.Column('vdot', sa.Float(), nullable=True),
        sa.Column('easy_pace_seconds', sa.Integer(), nullable=True),
        sa.Column('tempo_pace_seconds', sa.Integer(), nullable=True),
        sa.Column('threshold_pace_seconds', sa.Integer(), nullable=True),
        sa.Column('resting_hr', sa.Integer(), nullable=True),
        sa.Column('age', sa.Integer(), nullable=True),
        sa.Column('gender', sa.Text(), nullable=True),
    )

    op.create_table(
        'planned_workout',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('profile_id', sa.Integer(), sa.ForeignKey('athlete_profile.id'), nullable=True),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('workout_type', sa.Text(), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('target_distance_miles', sa.Float(), nullable=True),
        sa.Column('target_duration_minutes', sa.Integer(), nullable=True),
        sa.Column('target_pace_seconds_per_mile', sa.Integer(), nullable=True),
        sa.Column('structure', JSONType, nullable=True),
    )
    op.create_index('ix_planned_workout_profile_id', 'planned_workout', ['profile_id'])

    op.create_table(
        'canonical_route',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('fingerprint', JSONType, nullable=False),
        sa.Column('run_count', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('best_time_seconds', sa.Integer(), nullable=True),
        sa.Column('best_pace_seconds', sa.Integer(), nullable=True),
        sa.Column('average_time_seconds', sa.Integer(), nullable=True),
        sa.Column('average_pace_seconds', sa.Integer(), nullable=True),
        sa.Column('total_elevation_gain', sa.Integer(), nullable=True),
        sa.Column('distance_miles', sa.Float(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('name', name='uq_canonical_route_name'),
    )

    op.create_table(
        'workout',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('profile_id', sa.Integer(), sa.ForeignKey('athlete_profile.id'), nullable=True),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('activity_type', sa.Text(), nullable=False, server_default='run'),
        sa.Column('source', sa.Text(), nullable=False, server_default='manual'),
        sa.Column('distance_miles', sa.Float(), nullable=True),
        sa.Column('duration_minutes', sa.Float(), nullable=True),
        sa.Column('avg_pace_seconds', sa.Integer(), nullable=True),
        sa.Column('avg_hr', sa.Integer(), nullable=True),
        sa.Column('max_hr', sa.Integer(), nullable=True),
        sa.Column('elevation_gain_ft', sa.Integer(), nullable=True),
        sa.Column('route_name', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('workout_type', sa.Text(), nullable=True),
        sa.Column('category', sa.Text(), nullable=True),
        sa.Column('weather_temp_f', sa.Integer(), nullable=True),
        sa.Column('weather_feels_like_f', sa.Integer(), nullable=True),
        sa.Column('weather_humidity_pct', sa.Integer(), nullable=True),
        sa.Column('weather_wind_mph', sa.Integer(), nullable=True),
        sa.Column('weather_conditions', sa.Text(), nullable=True),
        sa.Column('planned_workout_id', sa.Integer(), sa.ForeignKey('planned_workout.id'), nullable=True),
        sa.Column('auto_category', sa.Text(), nullable=True),
        sa.Column('auto_summary', sa.Text(), nullable=True),
        sa.Column('quality_ratio', sa.Float(), nullable=True),
        sa.Column('trimp', sa.Float(), nullable=True),
        sa.Column('interval_adjusted_trimp', sa.Float(), nullable=True),
        sa.Column('interval_stress_details', JSONType, nullable=True),
        sa.Column('execution_score', sa.Integer(), nullable=True),
        sa.Column('execution_details', JSONType, nullable=True),
        sa.Column('data_quality_flags', JSONType, nullable=True),
        sa.Column('zone_distribution', JSONType, nullable=True),
        sa.Column('zone_dominant', sa.Text(), nullable=True),
        sa.Column('zone_classified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('zone_boundaries_used', JSONType, nullable=True),
        sa.Column('route_id', sa.Integer(), sa.ForeignKey('canonical_route.id'), nullable=True),
        sa.Column('route_fingerprint', JSONType, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_workout_profile_id', 'workout', ['profile_id'])
    op.create_index('ix_workout_workout_type', 'workout', ['workout_type'])

    op.create_table(
        'workout_segment',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('workout_id', sa.Integer(), sa.ForeignKey('workout.id', ondelete='CASCADE'), nullable=False),
        sa.Column('segment_number', sa.Integer(), nullable=False),
        sa.Column('segment_type', sa.Text(), nullable=True),
        sa.Column('distance_miles', sa.Float(), nullable=True),
        sa.Column('duration_seconds', sa.Integer(), nullable=True),
        sa.Column('pace_seconds_per_mile', sa.Integer(), nullable=True),
        sa.Column('avg_hr', sa.Integer(), nullable=True),
        sa.Column('max_hr', sa.Integer(), nullable=True),
        sa.Column('elevation_gain_ft', sa.Integer(), nullable=True),
        sa.Column('pace_zone', sa.Text(), nullable=True),
        sa.Column('pace_zone_confidence', sa.Float(), nullable=True),
        sa.UniqueConstraint('workout_id', 'segment_number', name='uq_workout_segment_number'),
    )
    op.create_index('ix_workout_segment_workout_id', 'workout_segment', ['workout_id'])


def downgrade() -> None:
    op.drop_index('ix_workout_segment_workout_id', table_name='workout_segment')
    op.drop_table('workout_segment')
    op.drop_index('ix_workout_workout_type', table_name='workout')
    op.drop_index('ix_workout_profile_id', table_name='workout')
    op.drop_table('workout')
    op.drop_table('canonical_route')
    op.drop_index('ix_planned_workout_profile_id', table_name='planned_workout')
    op.drop_table('planned_workout')
    op.drop_table('athlete_profile')
