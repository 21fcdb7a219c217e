"""initial marketplace schema

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(with_updated=True):
    columns = [sa.Column('created_at', sa.DateTime(), nullable=False)]
    if with_updated:
        columns.append(sa.Column('updated_at', sa.DateTime(), nullable=False))
    return columns


def _session_columns():
    return [
        sa.Column('session_id', sa.String(length=100), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('conversation', sa.JSON(), nullable=False),
        sa.Column('gathered_preferences', sa.JSON(), nullable=False),
        sa.Column('onboarding_state', sa.String(length=30), nullable=False),
        sa.Column('profile_completion_triggered_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('last_active_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('session_id'),
    ]


def upgrade():
    # Accounts
    op.create_table('users',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('username', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('last_login', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_users_username'), 'users', ['username'], unique=True)
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)

    op.create_table('sessions',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('token', sa.String(length=255), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('last_activity', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_sessions_user_id'), 'sessions', ['user_id'], unique=False)
    op.create_index(op.f('ix_sessions_token'), 'sessions', ['token'], unique=True)
    op.create_index(op.f('ix_sessions_expires_at'), 'sessions', ['expires_at'], unique=False)

    op.create_table('profiles',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('username', sa.String(length=255), nullable=False),
        sa.Column('full_name', sa.String(length=255), nullable=True),
        sa.Column('user_description', sa.Text(), nullable=True),
        sa.Column('certifications', sa.Text(), nullable=True),
        sa.Column('phone', sa.String(length=50), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('language', sa.String(length=5), nullable=False),
        sa.Column('profile_image_url', sa.Text(), nullable=True),
        sa.Column('sailing_experience', sa.Integer(), nullable=True),
        sa.Column('risk_level', sa.JSON(), nullable=False),
        sa.Column('skills', sa.JSON(), nullable=False),
        sa.Column('sailing_preferences', sa.Text(), nullable=True),
        sa.Column('roles', sa.JSON(), nullable=False),
        sa.Column('preferred_departure_location', sa.JSON(), nullable=True),
        sa.Column('availability_start_date', sa.Date(), nullable=True),
        sa.Column('availability_end_date', sa.Date(), nullable=True),
        sa.Column('profile_completion_percentage', sa.Integer(), nullable=False),
        sa.Column('profile_completed_at', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_profiles_username'), 'profiles', ['username'], unique=True)
    op.create_index(op.f('ix_profiles_email'), 'profiles', ['email'], unique=False)

    # Boats, journeys, legs
    op.create_table('boats',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('owner_id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('type', sa.String(length=50), nullable=True),
        sa.Column('make_model', sa.String(length=255), nullable=True),
        sa.Column('capacity', sa.Integer(), nullable=True),
        sa.Column('home_port', sa.String(length=255), nullable=True),
        sa.Column('country_flag', sa.String(length=2), nullable=True),
        sa.Column('loa_m', sa.Float(), nullable=True),
        sa.Column('beam_m', sa.Float(), nullable=True),
        sa.Column('max_draft_m', sa.Float(), nullable=True),
        sa.Column('displcmt_m', sa.Float(), nullable=True),
        sa.Column('average_speed_knots', sa.Float(), nullable=True),
        sa.Column('link_to_specs', sa.Text(), nullable=True),
        sa.Column('characteristics', sa.Text(), nullable=True),
        sa.Column('capabilities', sa.Text(), nullable=True),
        sa.Column('accommodations', sa.Text(), nullable=True),
        sa.Column('images', sa.JSON(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['owner_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_boats_owner_id'), 'boats', ['owner_id'], unique=False)

    op.create_table('journeys',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('boat_id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=True),
        sa.Column('end_date', sa.Date(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('risk_level', sa.JSON(), nullable=False),
        sa.Column('skills', sa.JSON(), nullable=False),
        sa.Column('min_experience_level', sa.Integer(), nullable=True),
        sa.Column('cost_model', sa.String(length=50), nullable=False),
        sa.Column('cost_info', sa.Text(), nullable=True),
        sa.Column('state', sa.String(length=20), nullable=False),
        sa.Column('is_ai_generated', sa.Boolean(), nullable=False),
        sa.Column('ai_prompt', sa.Text(), nullable=True),
        sa.Column('images', sa.JSON(), nullable=False),
        sa.Column('auto_approval_enabled', sa.Boolean(), nullable=False),
        sa.Column('auto_approval_threshold', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['boat_id'], ['boats.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_journeys_boat_id'), 'journeys', ['boat_id'], unique=False)
    op.create_index(op.f('ix_journeys_state'), 'journeys', ['state'], unique=False)

    op.create_table('legs',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('journey_id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('start_date', sa.DateTime(), nullable=True),
        sa.Column('end_date', sa.DateTime(), nullable=True),
        sa.Column('crew_needed', sa.Integer(), nullable=True),
        sa.Column('skills', sa.JSON(), nullable=False),
        sa.Column('risk_level', sa.String(length=50), nullable=True),
        sa.Column('min_experience_level', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['journey_id'], ['journeys.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_legs_journey_id'), 'legs', ['journey_id'], unique=False)

    op.create_table('waypoints',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('leg_id', sa.Uuid(), nullable=False),
        sa.Column('index', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('lat', sa.Float(), nullable=False),
        sa.Column('lng', sa.Float(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['leg_id'], ['legs.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('leg_id', 'index', name='waypoints_leg_index_unique')
    )
    op.create_index(op.f('ix_waypoints_leg_id'), 'waypoints', ['leg_id'], unique=False)

    op.create_table('journey_requirements',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('journey_id', sa.Uuid(), nullable=False),
        sa.Column('question_text', sa.Text(), nullable=False),
        sa.Column('question_type', sa.String(length=20), nullable=False),
        sa.Column('options', sa.JSON(), nullable=False),
        sa.Column('is_required', sa.Boolean(), nullable=False),
        sa.Column('weight', sa.Integer(), nullable=False),
        sa.Column('order', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['journey_id'], ['journeys.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_journey_requirements_journey_id'), 'journey_requirements', ['journey_id'], unique=False)

    # Registrations
    op.create_table('registrations',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('leg_id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('status', sa.String(length=30), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('match_percentage', sa.Float(), nullable=True),
        sa.Column('ai_match_score', sa.Integer(), nullable=True),
        sa.Column('ai_match_reasoning', sa.Text(), nullable=True),
        sa.Column('auto_approved', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['leg_id'], ['legs.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('leg_id', 'user_id', name='registrations_leg_user_unique')
    )
    op.create_index(op.f('ix_registrations_leg_id'), 'registrations', ['leg_id'], unique=False)
    op.create_index(op.f('ix_registrations_user_id'), 'registrations', ['user_id'], unique=False)

    op.create_table('registration_answers',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('registration_id', sa.Uuid(), nullable=False),
        sa.Column('requirement_id', sa.Uuid(), nullable=False),
        sa.Column('answer_text', sa.Text(), nullable=True),
        sa.Column('answer_json', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['registration_id'], ['registrations.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['requirement_id'], ['journey_requirements.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('registration_id', 'requirement_id', name='registration_answers_unique')
    )
    op.create_index(op.f('ix_registration_answers_registration_id'), 'registration_answers', ['registration_id'], unique=False)

    # Notifications and preferences
    op.create_table('notifications',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('type', sa.String(length=50), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('link', sa.String(length=500), nullable=True),
        sa.Column('read', sa.Boolean(), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_notifications_user_id'), 'notifications', ['user_id'], unique=False)
    op.create_index(op.f('ix_notifications_created_at'), 'notifications', ['created_at'], unique=False)

    op.create_table('email_preferences',
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('registration_updates', sa.Boolean(), nullable=False),
        sa.Column('journey_updates', sa.Boolean(), nullable=False),
        sa.Column('profile_reminders', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('user_id')
    )

    op.create_table('user_consents',
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('terms_accepted_at', sa.DateTime(), nullable=True),
        sa.Column('privacy_policy_accepted_at', sa.DateTime(), nullable=True),
        sa.Column('ai_processing_consent', sa.Boolean(), nullable=False),
        sa.Column('ai_processing_consent_at', sa.DateTime(), nullable=True),
        sa.Column('profile_sharing_consent', sa.Boolean(), nullable=False),
        sa.Column('profile_sharing_consent_at', sa.DateTime(), nullable=True),
        sa.Column('marketing_consent', sa.Boolean(), nullable=False),
        sa.Column('marketing_consent_at', sa.DateTime(), nullable=True),
        sa.Column('consent_setup_completed_at', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('user_id')
    )

    # Onboarding sessions
    op.create_table('owner_sessions',
        *_session_columns(),
        sa.Column('skipper_profile', sa.JSON(), nullable=True),
        sa.Column('crew_requirements', sa.JSON(), nullable=True),
        sa.Column('journey_details', sa.JSON(), nullable=True),
    )
    op.create_table('prospect_sessions',
        *_session_columns(),
        sa.Column('viewed_legs', sa.JSON(), nullable=False),
    )
    for table in ('owner_sessions', 'prospect_sessions'):
        op.create_index(op.f(f'ix_{table}_user_id'), table, ['user_id'], unique=False)
        op.create_index(op.f(f'ix_{table}_email'), table, ['email'], unique=False)
        op.create_index(op.f(f'ix_{table}_expires_at'), table, ['expires_at'], unique=False)


def downgrade():
    for table in ('prospect_sessions', 'owner_sessions'):
        op.drop_index(op.f(f'ix_{table}_expires_at'), table_name=table)
        op.drop_index(op.f(f'ix_{table}_email'), table_name=table)
        op.drop_index(op.f(f'ix_{table}_user_id'), table_name=table)
        op.drop_table(table)
    op.drop_table('user_consents')
    op.drop_table('email_preferences')
    op.drop_index(op.f('ix_notifications_created_at'), table_name='notifications')
    op.drop_index(op.f('ix_notifications_user_id'), table_name='notifications')
    op.drop_table('notifications')
    op.drop_index(op.f('ix_registration_answers_registration_id'), table_name='registration_answers')
    op.drop_table('registration_answers')
    op.drop_index(op.f('ix_registrations_user_id'), table_name='registrations')
    op.drop_index(op.f('ix_registrations_leg_id'), table_name='registrations')
    op.drop_table('registrations')
    op.drop_index(op.f('ix_journey_requirements_journey_id'), table_name='journey_requirements')
    op.drop_table('journey_requirements')
    op.drop_index(op.f('ix_waypoints_leg_id'), table_name='waypoints')
    op.drop_table('waypoints')
    op.drop_index(op.f('ix_legs_journey_id'), table_name='legs')
    op.drop_table('legs')
    op.drop_index(op.f('ix_journeys_state'), table_name='journeys')
    op.drop_index(op.f('ix_journeys_boat_id'), table_name='journeys')
    op.drop_table('journeys')
    op.drop_index(op.f('ix_boats_owner_id'), table_name='boats')
    op.drop_table('boats')
    op.drop_index(op.f('ix_profiles_email'), table_name='profiles')
    op.drop_index(op.f('ix_profiles_username'), table_name='profiles')
    op.drop_table('profiles')
    op.drop_index(op.f('ix_sessions_expires_at'), table_name='sessions')
    op.drop_index(op.f('ix_sessions_token'), table_name='sessions')
    op.drop_index(op.f('ix_sessions_user_id'), table_name='sessions')
    op.drop_table('sessions')
    op.drop_index(op.f('ix_users_email'), table_name='users')
    op.drop_index(op.f('ix_users_username'), table_name='users')
    op.drop_table('users')
