"""Job queue, schedules and job-matching tables

Revision ID: 001
Revises:
Create Date: 2026-10-18 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None

JSON = sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')
ACTIVE_DEDUP = sa.text("status IN ('PENDING', 'PROCESSING') AND deduplication_key IS NOT NULL")


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    # Create job_queue table
    op.create_table(
        'job_queue',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('job_type', sa.String(length=64), nullable=False),
        sa.Column('payload', JSON, nullable=False),
        sa.Column('result', JSON, nullable=True),
        sa.Column('user_id', sa.String(length=64), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('priority', sa.Integer(), nullable=False),
        sa.Column('attempt_count', sa.Integer(), nullable=False),
        sa.Column('max_attempts', sa.Integer(), nullable=False),
        sa.Column('available_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('deduplication_key', sa.String(length=255), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('locked_by', sa.String(length=128), nullable=True),
        sa.Column('locked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_job_queue_job_type'), 'job_queue', ['job_type'], unique=False)
    op.create_index(op.f('ix_job_queue_user_id'), 'job_queue', ['user_id'], unique=False)
    op.create_index('ix_job_queue_claim', 'job_queue', ['status', 'available_at', 'priority'], unique=False)
    op.create_index(
        'uq_job_queue_active_dedup',
        'job_queue',
        ['deduplication_key'],
        unique=True,
        postgresql_where=ACTIVE_DEDUP,
        sqlite_where=ACTIVE_DEDUP,
    )

    # Create schedule_definitions table
    op.create_table(
        'schedule_definitions',
        sa.Column('job_type', sa.String(length=64), nullable=False),
        sa.Column('cron_expression', sa.String(length=64), nullable=False),
        sa.Column('enabled', sa.Boolean(), nullable=False),
        sa.Column('payload', JSON, nullable=False),
        sa.Column('max_attempts', sa.Integer(), nullable=False),
        sa.Column('timeout_seconds', sa.Float(), nullable=True),
        sa.Column('run_on_start', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('job_type')
    )

    # Create profiles table
    op.create_table(
        'profiles',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('full_name', sa.String(length=255), nullable=False),
        sa.Column('job_title_prefs', JSON, nullable=False),
        sa.Column('years_experience', sa.Integer(), nullable=True),
        sa.Column('skills', JSON, nullable=False),
        sa.Column('preferred_locations', JSON, nullable=False),
        sa.Column('employment_types', JSON, nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_profiles_user_id'), 'profiles', ['user_id'], unique=True)

    # Create auto_apply_settings table
    op.create_table(
        'auto_apply_settings',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('profile_id', sa.String(length=36), nullable=False),
        sa.Column('is_enabled', sa.Boolean(), nullable=False),
        sa.Column('auto_scan_enabled', sa.Boolean(), nullable=False),
        sa.Column('scan_frequency_hours', sa.Integer(), nullable=False),
        sa.Column('last_scan_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('min_match_score', sa.Float(), nullable=False),
        sa.Column('notify_min_score', sa.Float(), nullable=False),
        sa.Column('auto_apply_enabled', sa.Boolean(), nullable=False),
        sa.Column('require_approval', sa.Boolean(), nullable=False),
        sa.Column('notify_on_match', sa.Boolean(), nullable=False),
        sa.Column('review_timeout_hours', sa.Integer(), nullable=True),
        sa.Column('max_applications_per_day', sa.Integer(), nullable=False),
        sa.Column('excluded_companies', JSON, nullable=False),
        sa.Column('excluded_keywords', JSON, nullable=False),
        sa.Column('require_salary_range', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['profile_id'], ['profiles.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('profile_id')
    )

    # Create job_listings table
    op.create_table(
        'job_listings',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=True),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('company', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('url', sa.String(length=1000), nullable=True),
        sa.Column('location', sa.String(length=255), nullable=True),
        sa.Column('salary_range', sa.String(length=100), nullable=True),
        sa.Column('employment_type', sa.String(length=32), nullable=True),
        sa.Column('source', sa.String(length=64), nullable=False),
        sa.Column('source_job_id', sa.String(length=255), nullable=True),
        sa.Column('match_score', sa.Float(), nullable=True),
        sa.Column('is_processed', sa.Boolean(), nullable=False),
        sa.Column('applied_to', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_job_listings_user_id'), 'job_listings', ['user_id'], unique=False)
    op.create_index(op.f('ix_job_listings_title'), 'job_listings', ['title'], unique=False)
    op.create_index(op.f('ix_job_listings_company'), 'job_listings', ['company'], unique=False)
    op.create_index(op.f('ix_job_listings_source_job_id'), 'job_listings', ['source_job_id'], unique=False)

    # Create applications table
    op.create_table(
        'applications',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('job_listing_id', sa.String(length=36), nullable=True),
        sa.Column('company', sa.String(length=255), nullable=False),
        sa.Column('job_title', sa.String(length=255), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('match_score', sa.Float(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['job_listing_id'], ['job_listings.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'job_listing_id', name='uq_application_user_listing')
    )
    op.create_index(op.f('ix_applications_user_id'), 'applications', ['user_id'], unique=False)

    # Create job_notifications table
    op.create_table(
        'job_notifications',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('job_listing_id', sa.String(length=36), nullable=False),
        sa.Column('match_score', sa.Float(), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['job_listing_id'], ['job_listings.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_job_notifications_user_id'), 'job_notifications', ['user_id'], unique=False)
    op.create_index(op.f('ix_job_notifications_status'), 'job_notifications', ['status'], unique=False)

    # Create application_reviews table
    op.create_table(
        'application_reviews',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('notification_id', sa.String(length=36), nullable=False),
        sa.Column('job_listing_id', sa.String(length=36), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['notification_id'], ['job_notifications.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['job_listing_id'], ['job_listings.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_application_reviews_user_id'), 'application_reviews', ['user_id'], unique=False)
    op.create_index(op.f('ix_application_reviews_status'), 'application_reviews', ['status'], unique=False)


def downgrade() -> None:
    # Drop tables in reverse order
    op.drop_index(op.f('ix_application_reviews_status'), table_name='application_reviews')
    op.drop_index(op.f('ix_application_reviews_user_id'), table_name='application_reviews')
    op.drop_table('application_reviews')

    op.drop_index(op.f('ix_job_notifications_status'), table_name='job_notifications')
    op.drop_index(op.f('ix_job_notifications_user_id'), table_name='job_notifications')
    op.drop_table('job_notifications')

    op.drop_index(op.f('ix_applications_user_id'), table_name='applications')
    op.drop_table('applications')

    op.drop_index(op.f('ix_job_listings_source_job_id'), table_name='job_listings')
    op.drop_index(op.f('ix_job_listings_company'), table_name='job_listings')
    op.drop_index(op.f('ix_job_listings_title'), table_name='job_listings')
    op.drop_index(op.f('ix_job_listings_user_id'), table_name='job_listings')
    op.drop_table('job_listings')

    op.drop_table('auto_apply_settings')

    op.drop_index(op.f('ix_profiles_user_id'), table_name='profiles')
    op.drop_table('profiles')

    op.drop_table('schedule_definitions')

    op.drop_index('uq_job_queue_active_dedup', table_name='job_queue')
    op.drop_index('ix_job_queue_claim', table_name='job_queue')
    op.drop_index(op.f('ix_job_queue_user_id'), table_name='job_queue')
    op.drop_index(op.f('ix_job_queue_job_type'), table_name='job_queue')
    op.drop_table('job_queue')
