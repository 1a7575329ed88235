"""Create contract core tables

Creates the tables for the AMC/rental contract core:
- web_accounts: portal identities (read-only mirror of the auth service)
- plan_templates, catalog_items: catalog slice used to build contracts
- customer_profiles, profile_contracts, complaint_tickets: admin-managed records
- contracts, service_visits: self-service contracts and their visit history
- notifications: admin bell and portal notifications

Revision ID: 0001_contract_core
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '0001_contract_core'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _term_columns() -> list[sa.Column]:
    """Columns shared by contracts and profile_contracts."""
    return [
        sa.Column('kind', sa.String(20), nullable=False, server_default='amc'),
        sa.Column('contract_code', sa.String(64), nullable=False),
        sa.Column('plan_id', sa.Integer(), nullable=True),
        sa.Column('plan_name', sa.String(255), nullable=True),
        sa.Column('start_date', sa.DateTime(), nullable=False),
        sa.Column('end_date', sa.DateTime(), nullable=False),
        sa.Column('duration_months', sa.Integer(), nullable=False, server_default='12'),
        sa.Column('services_total', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('services_used', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('parts_included', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('amount', sa.Float(), nullable=False, server_default='0'),
        sa.Column('amount_paid', sa.Float(), nullable=False, server_default='0'),
        sa.Column('payment_status', sa.String(20), nullable=False, server_default='Pending'),
        sa.Column('status', sa.String(20), nullable=False, server_default='Pending'),
        sa.Column('assigned_technician', sa.String(255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('schema_version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # Create web_accounts table
    op.create_table(
        'web_accounts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('first_name', sa.String(100), nullable=True),
        sa.Column('last_name', sa.String(100), nullable=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('hashed_password', sa.String(255), nullable=True),
        sa.Column('token_version', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('role', sa.String(20), nullable=False, server_default='user'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_web_accounts_id', 'web_accounts', ['id'], unique=False)
    op.create_index('ix_web_accounts_email', 'web_accounts', ['email'], unique=True)
    op.create_index('ix_web_accounts_phone', 'web_accounts', ['phone'], unique=False)

    # Catalog slice
    op.create_table(
        'plan_templates',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('kind', sa.String(20), nullable=False, server_default='amc'),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('price', sa.Float(), nullable=False),
        sa.Column('duration_months', sa.Integer(), nullable=True),
        sa.Column('service_quota', sa.Integer(), nullable=True),
        sa.Column('parts_included', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('image_url', sa.String(500), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_plan_templates_id', 'plan_templates', ['id'], unique=False)

    op.create_table(
        'catalog_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('kind', sa.String(20), nullable=False, server_default='Product'),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('image_url', sa.String(500), nullable=True),
        sa.Column('plan_ids', sa.JSON(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_catalog_items_id', 'catalog_items', ['id'], unique=False)
    op.create_index('ix_catalog_items_kind_id', 'catalog_items', ['kind', 'id'], unique=False)

    # Create customer_profiles table
    op.create_table(
        'customer_profiles',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('customer_code', sa.String(32), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('mobile', sa.String(50), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('address', sa.JSON(), nullable=True),
        sa.Column('type', sa.String(50), nullable=False, server_default='New'),
        sa.Column('status', sa.String(50), nullable=False, server_default='Active'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('customer_code'),
        sa.UniqueConstraint('mobile'),
    )
    op.create_index('ix_customer_profiles_id', 'customer_profiles', ['id'], unique=False)
    op.create_index('ix_customer_profiles_email', 'customer_profiles', ['email'], unique=False)
    op.create_index('ix_customer_profiles_updated_at', 'customer_profiles', ['updated_at'], unique=False)

    # Create contracts table
    op.create_table(
        'contracts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.String(100), nullable=False),
        sa.Column('product_kind', sa.String(20), nullable=False, server_default='Product'),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('product_name', sa.String(255), nullable=False),
        sa.Column('product_image', sa.String(500), nullable=True),
        sa.Column('renewed_from_id', sa.Integer(), nullable=True),
        *_term_columns(),
        sa.ForeignKeyConstraint(['account_id'], ['web_accounts.id'], ),
        sa.ForeignKeyConstraint(['renewed_from_id'], ['contracts.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_id', 'product_id', 'plan_id', name='uq_contracts_order_product_plan'),
        sa.UniqueConstraint('contract_code', name='uq_contracts_contract_code'),
        sa.CheckConstraint('services_used >= 0 AND services_used <= services_total', name='ck_contracts_quota'),
    )
    op.create_index('ix_contracts_id', 'contracts', ['id'], unique=False)
    op.create_index('ix_contracts_account_id', 'contracts', ['account_id'], unique=False)
    op.create_index('ix_contracts_order_id', 'contracts', ['order_id'], unique=False)
    op.create_index('ix_contracts_status', 'contracts', ['status'], unique=False)
    op.create_index('ix_contracts_account_status', 'contracts', ['account_id', 'status'], unique=False)
    op.create_index('ix_contracts_end_date', 'contracts', ['end_date'], unique=False)

    # Create profile_contracts table
    op.create_table(
        'profile_contracts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('profile_id', sa.Integer(), nullable=False),
        sa.Column('is_current', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('archived_at', sa.DateTime(), nullable=True),
        sa.Column('source', sa.String(20), nullable=False, server_default='admin'),
        sa.Column('contract_id', sa.Integer(), nullable=True),
        sa.Column('plan_type', sa.String(50), nullable=True),
        sa.Column('payment_mode', sa.String(20), nullable=True),
        sa.Column('next_due_date', sa.DateTime(), nullable=True),
        sa.Column('machine_model', sa.String(255), nullable=True),
        sa.Column('machine_image', sa.String(500), nullable=True),
        *_term_columns(),
        sa.ForeignKeyConstraint(['profile_id'], ['customer_profiles.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['contract_id'], ['contracts.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_profile_contracts_id', 'profile_contracts', ['id'], unique=False)
    op.create_index('ix_profile_contracts_profile_id', 'profile_contracts', ['profile_id'], unique=False)
    op.create_index('ix_profile_contracts_contract_id', 'profile_contracts', ['contract_id'], unique=False)
    op.create_index('ix_profile_contracts_status', 'profile_contracts', ['status'], unique=False)
    op.create_index('ix_profile_contracts_contract_code', 'profile_contracts', ['contract_code'], unique=False)
    # At most one current term per (profile, kind)
    op.create_index(
        'uq_profile_contracts_current',
        'profile_contracts',
        ['profile_id', 'kind'],
        unique=True,
        postgresql_where=sa.text('is_current'),
        sqlite_where=sa.text('is_current = 1'),
    )

    # Create service_visits table
    op.create_table(
        'service_visits',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('contract_id', sa.Integer(), nullable=False),
        sa.Column('visit_date', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('category', sa.String(50), nullable=False, server_default='Regular Service'),
        sa.Column('status', sa.String(30), nullable=False, server_default='Pending Assignment'),
        sa.Column('technician_name', sa.String(255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('ticket_code', sa.String(64), nullable=True),
        sa.Column('next_due_date', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['contract_id'], ['contracts.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_service_visits_id', 'service_visits', ['id'], unique=False)
    op.create_index('ix_service_visits_contract_id', 'service_visits', ['contract_id'], unique=False)
    op.create_index('ix_service_visits_ticket_code', 'service_visits', ['ticket_code'], unique=False)
    op.create_index('ix_service_visits_contract_date', 'service_visits', ['contract_id', 'visit_date'], unique=False)

    # Create complaint_tickets table
    op.create_table(
        'complaint_tickets',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('profile_id', sa.Integer(), nullable=False),
        sa.Column('ticket_code', sa.String(64), nullable=False),
        sa.Column('type', sa.String(50), nullable=False, server_default='Other'),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('opened_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('priority', sa.String(20), nullable=False, server_default='Medium'),
        sa.Column('status', sa.String(20), nullable=False, server_default='Open'),
        sa.Column('assigned_technician', sa.String(255), nullable=True),
        sa.Column('resolution_notes', sa.Text(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['profile_id'], ['customer_profiles.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('ticket_code'),
    )
    op.create_index('ix_complaint_tickets_id', 'complaint_tickets', ['id'], unique=False)
    op.create_index('ix_complaint_tickets_profile_id', 'complaint_tickets', ['profile_id'], unique=False)
    op.create_index('ix_complaint_tickets_status', 'complaint_tickets', ['status'], unique=False)

    # Create notifications table
    op.create_table(
        'notifications',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('audience', sa.String(20), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=True),
        sa.Column('customer_id', sa.Integer(), nullable=True),
        sa.Column('notification_type', sa.String(50), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('ref_id', sa.String(100), nullable=True),
        sa.Column('extra_data', sa.JSON(), nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('read_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['account_id'], ['web_accounts.id'], ),
        sa.ForeignKeyConstraint(['customer_id'], ['customer_profiles.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_notifications_id', 'notifications', ['id'], unique=False)
    op.create_index('ix_notifications_audience', 'notifications', ['audience'], unique=False)
    op.create_index('ix_notifications_account_id', 'notifications', ['account_id'], unique=False)
    op.create_index('ix_notifications_notification_type', 'notifications', ['notification_type'], unique=False)
    op.create_index('ix_notifications_is_read', 'notifications', ['is_read'], unique=False)
    op.create_index('ix_notifications_created_at', 'notifications', ['created_at'], unique=False)


def downgrade() -> None:
    op.drop_table('notifications')
    op.drop_table('complaint_tickets')
    op.drop_table('service_visits')
    op.drop_index('uq_profile_contracts_current', table_name='profile_contracts')
    op.drop_table('profile_contracts')
    op.drop_table('contracts')
    op.drop_table('customer_profiles')
    op.drop_table('catalog_items')
    op.drop_table('plan_templates')
    op.drop_table('web_accounts')
