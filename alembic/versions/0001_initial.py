"""Initial schema: organizations, users, calls, transcripts, fields, templates, usage, notifications

Revision ID: 0001_initial
Revises: None
Create Date: 2026-10-17 00:00:00.000000
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        'organizations',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('name', sa.String(120), nullable=False, unique=True),
        *_timestamps(),
    )
    op.create_table(
        'users',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('org_id', sa.Integer, nullable=False, index=True),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('full_name', sa.String(255)),
        sa.Column('password_hash', sa.String(255), nullable=False, server_default=''),
        sa.Column('role', sa.String(50), server_default='member'),
        *_timestamps(),
    )
    op.create_table(
        'organization_members',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('org_id', sa.Integer, sa.ForeignKey('organizations.id'), nullable=False, index=True),
        sa.Column('user_id', sa.Integer, sa.ForeignKey('users.id'), nullable=False, index=True),
        sa.Column('role', sa.String(50), server_default='member'),
        *_timestamps(),
        sa.UniqueConstraint('org_id', 'user_id', name='uq_organization_members_org_user'),
    )
    op.create_table(
        'custom_templates',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('user_id', sa.Integer, sa.ForeignKey('users.id'), nullable=False, index=True),
        sa.Column('organization_id', sa.Integer, sa.ForeignKey('organizations.id'), nullable=True, index=True),
        sa.Column('name', sa.String(120), nullable=False),
        sa.Column('description', sa.Text),
        *_timestamps(),
    )
    op.create_table(
        'template_fields',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('template_id', sa.Integer, sa.ForeignKey('custom_templates.id'), nullable=False, index=True),
        sa.Column('field_name', sa.String(120), nullable=False),
        sa.Column('field_type', sa.String(20), server_default='text'),
        sa.Column('description', sa.Text),
        sa.Column('options', sa.JSON),
        sa.Column('is_required', sa.Boolean, server_default=sa.false()),
        sa.Column('sort_order', sa.Integer, server_default='0'),
        *_timestamps(),
    )
    op.create_table(
        'calls',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('org_id', sa.Integer, nullable=False, index=True),
        sa.Column('user_id', sa.Integer, sa.ForeignKey('users.id'), nullable=False, index=True),
        sa.Column('file_name', sa.String(255)),
        sa.Column('storage_url', sa.String(512)),
        sa.Column('customer_name', sa.String(255)),
        sa.Column('call_type', sa.String(50)),
        sa.Column('template_id', sa.Integer, sa.ForeignKey('custom_templates.id'), nullable=True),
        sa.Column('trim_start', sa.Float),
        sa.Column('trim_end', sa.Float),
        sa.Column('status', sa.String(20), nullable=False, server_default='uploaded', index=True),
        sa.Column('processing_progress', sa.Integer, nullable=False, server_default='0'),
        sa.Column('processing_message', sa.String(255)),
        sa.Column('processing_error', sa.Text),
        sa.Column('processing_attempt', sa.Integer, nullable=False, server_default='0'),
        sa.Column('processing_started_at', sa.DateTime),
        sa.Column('processed_at', sa.DateTime),
        sa.Column('duration_sec', sa.Integer),
        sa.Column('duration_minutes', sa.Integer),
        sa.Column('customer_company', sa.String(255)),
        sa.Column('next_steps', sa.Text),
        sa.Column('sentiment_type', sa.String(20)),
        sa.Column('sentiment_score', sa.Integer),
        *_timestamps(),
    )
    op.create_table(
        'transcripts',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('org_id', sa.Integer, nullable=False, index=True),
        sa.Column('call_id', sa.Integer, sa.ForeignKey('calls.id'), nullable=False, unique=True),
        sa.Column('provider_transcript_id', sa.String(64)),
        sa.Column('text', sa.Text, nullable=False, server_default=''),
        sa.Column('lang', sa.String(10), server_default='en'),
        sa.Column('utterances', sa.JSON),
        sa.Column('words', sa.JSON),
        sa.Column('speaker_mapping', sa.JSON),
        sa.Column('speakers_count', sa.Integer, server_default='0'),
        sa.Column('confidence_score', sa.Float, server_default='0'),
        sa.Column('sentiment_overall', sa.String(20)),
        sa.Column('audio_duration_ms', sa.Integer),
        sa.Column('word_count', sa.Integer, server_default='0'),
        *_timestamps(),
    )
    op.create_table(
        'call_fields',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('call_id', sa.Integer, sa.ForeignKey('calls.id'), nullable=False, index=True),
        sa.Column('template_id', sa.Integer, sa.ForeignKey('custom_templates.id'), nullable=True),
        sa.Column('template_field_id', sa.Integer, sa.ForeignKey('template_fields.id'), nullable=True),
        sa.Column('field_name', sa.String(120), nullable=False),
        sa.Column('field_value', sa.JSON),
        sa.Column('field_type', sa.String(20), nullable=False, server_default='text'),
        sa.Column('confidence_score', sa.Float),
        sa.Column('source', sa.String(50)),
        *_timestamps(),
    )
    op.create_table(
        'usage_records',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('org_id', sa.Integer, nullable=False, index=True),
        sa.Column('user_id', sa.Integer, sa.ForeignKey('users.id')),
        sa.Column('call_id', sa.Integer, sa.ForeignKey('calls.id'), nullable=False, index=True),
        sa.Column('metric_type', sa.String(30), nullable=False, server_default='call_minutes'),
        sa.Column('minutes', sa.Integer, nullable=False, server_default='0'),
        sa.Column('cost', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('usage_metadata', sa.JSON),
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('call_id', 'metric_type', name='uq_usage_records_call_metric'),
    )
    op.create_table(
        'notifications',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('org_id', sa.Integer, nullable=False, index=True),
        sa.Column('user_id', sa.Integer, sa.ForeignKey('users.id'), index=True),
        sa.Column('call_id', sa.Integer, sa.ForeignKey('calls.id')),
        sa.Column('type', sa.String(50)),
        sa.Column('title', sa.String(255)),
        sa.Column('message', sa.Text),
        sa.Column('link', sa.String(255)),
        sa.Column('sent_to', sa.String(255)),
        sa.Column('provider_message_id', sa.String(255)),
        sa.Column('sent_at', sa.DateTime),
        sa.Column('read_at', sa.DateTime),
        *_timestamps(),
    )


def downgrade() -> None:
    for t in ('notifications', 'usage_records', 'call_fields', 'transcripts', 'calls',
              'template_fields', 'custom_templates', 'organization_members', 'users', 'organizations'):
        op.drop_table(t)
