"""EasyCars sync schema: credentials, vehicles, leads, conflicts, sync logs, raw stock

Revision ID: 0001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Encrypted per-dealership credentials
    op.create_table(
        'easycars_credentials',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('dealership_id', sa.Integer(), nullable=False),
        sa.Column('account_number_encrypted', sa.Text(), nullable=False),
        sa.Column('account_secret_encrypted', sa.Text(), nullable=False),
        sa.Column('client_id_encrypted', sa.Text(), nullable=True),
        sa.Column('client_secret_encrypted', sa.Text(), nullable=True),
        sa.Column('environment', sa.String(length=20), nullable=False, server_default='Test'),
        sa.Column('yard_code', sa.String(length=50), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('auto_sync_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('last_synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_easycars_credentials_id', 'easycars_credentials', ['id'], unique=False)
    op.create_index('ix_easycars_credentials_dealership_id', 'easycars_credentials', ['dealership_id'], unique=True)

    # Vehicles
    op.create_table(
        'vehicles',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('dealership_id', sa.Integer(), nullable=False),
        sa.Column('make', sa.String(length=100), nullable=False),
        sa.Column('model', sa.String(length=100), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('price', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('mileage', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('condition', sa.String(length=10), nullable=False, server_default='Used'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='Active'),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('images', sa.JSON(), nullable=False),
        sa.Column('data_source', sa.String(length=20), nullable=False, server_default='Manual'),
        sa.Column('easycars_stock_number', sa.String(length=50), nullable=True),
        sa.Column('easycars_yard_code', sa.String(length=50), nullable=True),
        sa.Column('easycars_vin', sa.String(length=32), nullable=True),
        sa.Column('exterior_color', sa.String(length=50), nullable=True),
        sa.Column('body', sa.String(length=50), nullable=True),
        sa.Column('fuel_type', sa.String(length=50), nullable=True),
        sa.Column('transmission', sa.String(length=50), nullable=True),
        sa.Column('engine_capacity', sa.String(length=50), nullable=True),
        sa.Column('doors', sa.Integer(), nullable=True),
        sa.Column('features', sa.Text(), nullable=True),
        sa.Column('last_synced_from_easycars', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_vehicles_id', 'vehicles', ['id'], unique=False)
    op.create_index('ix_vehicles_dealership_id', 'vehicles', ['dealership_id'], unique=False)
    op.create_index('idx_vehicles_dealership_vin', 'vehicles', ['dealership_id', 'easycars_vin'], unique=False)
    op.create_index(
        'idx_vehicles_dealership_stock_number', 'vehicles', ['dealership_id', 'easycars_stock_number'], unique=False
    )

    # Raw EasyCars stock payloads, one per vehicle
    op.create_table(
        'easycars_stock_data',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('vehicle_id', sa.Integer(), nullable=False),
        sa.Column('raw_json', sa.Text(), nullable=False),
        sa.Column('api_version', sa.String(length=10), nullable=False, server_default='1.0'),
        sa.Column('synced_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_easycars_stock_data_id', 'easycars_stock_data', ['id'], unique=False)
    op.create_index('ix_easycars_stock_data_vehicle_id', 'easycars_stock_data', ['vehicle_id'], unique=True)

    # Leads
    op.create_table(
        'leads',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('dealership_id', sa.Integer(), nullable=False),
        sa.Column('vehicle_id', sa.Integer(), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=20), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='Received'),
        sa.Column('easycars_lead_number', sa.String(length=50), nullable=True),
        sa.Column('easycars_customer_no', sa.String(length=50), nullable=True),
        sa.Column('easycars_raw_data', sa.Text(), nullable=True),
        sa.Column('data_source', sa.String(length=20), nullable=False, server_default='Manual'),
        sa.Column('last_synced_to_easycars', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_synced_from_easycars', sa.DateTime(timezone=True), nullable=True),
        sa.Column('vehicle_interest_type', sa.String(length=50), nullable=True),
        sa.Column('finance_interested', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('rating', sa.String(length=20), nullable=True),
        sa.Column('last_known_easycars_status', sa.Integer(), nullable=True),
        sa.Column('status_synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_leads_id', 'leads', ['id'], unique=False)
    op.create_index('ix_leads_dealership_id', 'leads', ['dealership_id'], unique=False)
    op.create_index('ix_leads_status', 'leads', ['status'], unique=False)
    op.create_index(
        'idx_leads_dealership_easycars_number', 'leads', ['dealership_id', 'easycars_lead_number'], unique=False
    )

    # Status conflicts awaiting review
    op.create_table(
        'lead_status_conflicts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('dealership_id', sa.Integer(), nullable=False),
        sa.Column('lead_id', sa.Integer(), nullable=False),
        sa.Column('easycars_lead_number', sa.String(length=50), nullable=False),
        sa.Column('local_status', sa.String(length=20), nullable=False),
        sa.Column('remote_status', sa.Integer(), nullable=False),
        sa.Column('detected_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_resolved', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('resolved_by', sa.String(length=255), nullable=True),
        sa.Column('resolution', sa.String(length=10), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_lead_status_conflicts_id', 'lead_status_conflicts', ['id'], unique=False)
    op.create_index('ix_lead_status_conflicts_dealership_id', 'lead_status_conflicts', ['dealership_id'], unique=False)
    op.create_index('ix_lead_status_conflicts_lead_id', 'lead_status_conflicts', ['lead_id'], unique=False)
    op.create_index(
        'idx_lead_status_conflicts_lead_open', 'lead_status_conflicts', ['lead_id', 'is_resolved'], unique=False
    )

    # Sync audit log
    op.create_table(
        'easycars_sync_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('dealership_id', sa.Integer(), nullable=False),
        sa.Column('sync_type', sa.String(length=30), nullable=False, server_default='Stock'),
        sa.Column('synced_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('items_processed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('items_succeeded', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('items_failed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('images_downloaded', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('images_failed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('error_messages', sa.Text(), nullable=False, server_default='[]'),
        sa.Column('duration_ms', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('api_version', sa.String(length=10), nullable=False, server_default='1.0'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_easycars_sync_logs_id', 'easycars_sync_logs', ['id'], unique=False)
    op.create_index('ix_easycars_sync_logs_dealership_id', 'easycars_sync_logs', ['dealership_id'], unique=False)
    op.create_index(
        'idx_easycars_sync_logs_dealership_type_synced',
        'easycars_sync_logs',
        ['dealership_id', 'sync_type', 'synced_at'],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index('idx_easycars_sync_logs_dealership_type_synced', table_name='easycars_sync_logs')
    op.drop_index('ix_easycars_sync_logs_dealership_id', table_name='easycars_sync_logs')
    op.drop_index('ix_easycars_sync_logs_id', table_name='easycars_sync_logs')
    op.drop_table('easycars_sync_logs')

    op.drop_index('idx_lead_status_conflicts_lead_open', table_name='lead_status_conflicts')
    op.drop_index('ix_lead_status_conflicts_lead_id', table_name='lead_status_conflicts')
    op.drop_index('ix_lead_status_conflicts_dealership_id', table_name='lead_status_conflicts')
    op.drop_index('ix_lead_status_conflicts_id', table_name='lead_status_conflicts')
    op.drop_table('lead_status_conflicts')

    op.drop_index('idx_leads_dealership_easycars_number', table_name='leads')
    op.drop_index('ix_leads_status', table_name='leads')
    op.drop_index('ix_leads_dealership_id', table_name='leads')
    op.drop_index('ix_leads_id', table_name='leads')
    op.drop_table('leads')

    op.drop_index('ix_easycars_stock_data_vehicle_id', table_name='easycars_stock_data')
    op.drop_index('ix_easycars_stock_data_id', table_name='easycars_stock_data')
    op.drop_table('easycars_stock_data')

    op.drop_index('idx_vehicles_dealership_stock_number', table_name='vehicles')
    op.drop_index('idx_vehicles_dealership_vin', table_name='vehicles')
    op.drop_index('ix_vehicles_dealership_id', table_name='vehicles')
    op.drop_index('ix_vehicles_id', table_name='vehicles')
    op.drop_table('vehicles')

    op.drop_index('ix_easycars_credentials_dealership_id', table_name='easycars_credentials')
    op.drop_index('ix_easycars_credentials_id', table_name='easycars_credentials')
    op.drop_table('easycars_credentials')
