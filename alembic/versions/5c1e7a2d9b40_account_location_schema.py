"""account and location schema

Revision ID: 5c1e7a2d9b40
Revises:
Create Date: 2026-10-19 09:12:44.318205

Creates the accounts, locations, dependent record and change log tables.
Foreign keys carry no ON DELETE CASCADE: dependents are repointed by the
merge engine before a parent is deleted.
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = '5c1e7a2d9b40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'accounts',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(500), nullable=False),
        sa.Column('account_type', sa.String(30), nullable=False),
        sa.Column('status', sa.String(30), nullable=False),
        sa.Column('industry', sa.String(255), nullable=True),
        sa.Column('primary_contact_name', sa.String(255), nullable=True),
        sa.Column('primary_contact_email', sa.String(255), nullable=True),
        sa.Column('primary_contact_phone', sa.String(50), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('sage_code', sa.String(50), nullable=True),
        sa.Column('pending_contract_sent', sa.Boolean(), nullable=False),
        sa.Column('udf_clinic_name', sa.String(500), nullable=True),
        sa.Column('udf_address_line1', sa.String(500), nullable=True),
        sa.Column('udf_address_line2', sa.String(500), nullable=True),
        sa.Column('udf_city', sa.String(200), nullable=True),
        sa.Column('udf_state', sa.String(100), nullable=True),
        sa.Column('udf_zipcode', sa.String(20), nullable=True),
        sa.Column('udf_phone', sa.String(50), nullable=True),
        sa.Column('udf_email', sa.String(255), nullable=True),
        sa.Column('udf_notes', sa.Text(), nullable=True),
        sa.Column('udf_country_code', sa.String(10), nullable=True),
        sa.Column('created_by', sa.String(100), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_accounts_account_type', 'accounts', ['account_type'])
    op.create_index('ix_accounts_status', 'accounts', ['status'])
    op.create_index('idx_accounts_type_status', 'accounts', ['account_type', 'status'])

    op.create_table(
        'locations',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('account_id', sa.Integer(), sa.ForeignKey('accounts.id'), nullable=False),
        sa.Column('name', sa.String(500), nullable=True),
        sa.Column('address_line1', sa.String(500), nullable=True),
        sa.Column('address_line2', sa.String(500), nullable=True),
        sa.Column('city', sa.String(200), nullable=True),
        sa.Column('state', sa.String(100), nullable=True),
        sa.Column('zip_code', sa.String(20), nullable=True),
        sa.Column('country', sa.String(100), nullable=True),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('contact_name', sa.String(255), nullable=True),
        sa.Column('contact_title', sa.String(255), nullable=True),
        sa.Column('is_primary', sa.Boolean(), nullable=False),
        sa.Column('status', sa.String(30), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('clinic_code', sa.String(50), nullable=True),
        sa.Column('sage_code', sa.String(50), nullable=True),
        sa.Column('agreement_document_url', sa.String(1000), nullable=True),
        sa.Column('license_document_url', sa.String(1000), nullable=True),
        sa.Column('pending_contract_sent', sa.Boolean(), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_locations_account_id', 'locations', ['account_id'])

    op.create_table(
        'agreements',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('account_id', sa.Integer(), sa.ForeignKey('accounts.id'), nullable=False),
        sa.Column('location_id', sa.Integer(), sa.ForeignKey('locations.id'), nullable=True),
        sa.Column('agreement_type', sa.String(50), nullable=True),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('status', sa.String(30), nullable=False),
        sa.Column('document_url', sa.String(1000), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        'activities',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('account_id', sa.Integer(), sa.ForeignKey('accounts.id'), nullable=False),
        sa.Column('location_id', sa.Integer(), sa.ForeignKey('locations.id'), nullable=True),
        sa.Column('activity_type', sa.String(50), nullable=True),
        sa.Column('subject', sa.String(500), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('activity_date', sa.DateTime(), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        'notes',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('account_id', sa.Integer(), sa.ForeignKey('accounts.id'), nullable=False),
        sa.Column('location_id', sa.Integer(), sa.ForeignKey('locations.id'), nullable=True),
        sa.Column('title', sa.String(500), nullable=True),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('is_private', sa.Boolean(), nullable=False),
        *_timestamps(),
    )

    for table in ('agreements', 'activities', 'notes'):
        op.create_index(f'ix_{table}_account_id', table, ['account_id'])
        op.create_index(f'ix_{table}_location_id', table, ['location_id'])

    op.create_table(
        'location_contacts',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('location_id', sa.Integer(), sa.ForeignKey('locations.id'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('title', sa.String(255), nullable=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_location_contacts_location_id', 'location_contacts', ['location_id'])

    op.create_table(
        'change_log',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.String(100), nullable=True),
        sa.Column('user_name', sa.String(255), nullable=True),
        sa.Column('user_email', sa.String(255), nullable=True),
        sa.Column('action_type', sa.String(50), nullable=False),
        sa.Column('entity_type', sa.String(30), nullable=False),
        sa.Column('entity_id', sa.String(100), nullable=True),
        sa.Column('entity_name', sa.String(500), nullable=True),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_change_log_action_type', 'change_log', ['action_type'])
    op.create_index('ix_change_log_entity_type', 'change_log', ['entity_type'])
    op.create_index('ix_change_log_entity_id', 'change_log', ['entity_id'])
    op.create_index('ix_change_log_created_at', 'change_log', ['created_at'])


def downgrade() -> None:
    op.drop_table('change_log')
    op.drop_table('location_contacts')
    op.drop_table('notes')
    op.drop_table('activities')
    op.drop_table('agreements')
    op.drop_table('locations')
    op.drop_table('accounts')
