"""create_leads_sync_tables

Revision ID: 3f9c2a71d0be
Revises: 
Create Date: 2026-10-19 10:12:44.318207

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f9c2a71d0be'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    connection = op.get_bind()
    inspector = sa.inspect(connection)
    
    # Таблицы могли быть созданы через Base.metadata.create_all при старте приложения
    existing_tables = inspector.get_table_names()
    
    # 1. Правила маппинга полей
    if 'field_mappings' not in existing_tables:
        op.create_table(
            'field_mappings',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('source_field', sa.String(), nullable=False),
            sa.Column('source_field_type', sa.String(), nullable=True),
            sa.Column('target_field', sa.String(), nullable=False),
            sa.Column('target_type', sa.String(), nullable=False, server_default='text'),
            sa.Column('transform_function', sa.String(), nullable=False, server_default='identity'),
            sa.Column('active', sa.Boolean(), nullable=False, server_default='1'),
            sa.Column('hidden', sa.Boolean(), nullable=False, server_default='0'),
            sa.Column('priority', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('notes', sa.Text(), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
            sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_field_mappings_id'), 'field_mappings', ['id'], unique=False)
        op.create_index(op.f('ix_field_mappings_source_field'), 'field_mappings', ['source_field'], unique=False)
        op.create_index(op.f('ix_field_mappings_target_field'), 'field_mappings', ['target_field'], unique=False)
    
    # 2. Кэш полей Bitrix24
    if 'bitrix_field_cache' not in existing_tables:
        op.create_table(
            'bitrix_field_cache',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('field_id', sa.String(), nullable=False),
            sa.Column('title', sa.String(), nullable=False),
            sa.Column('field_type', sa.String(), nullable=False),
            sa.Column('items', sa.JSON(), nullable=True),
            sa.Column('cached_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
            sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_bitrix_field_cache_id'), 'bitrix_field_cache', ['id'], unique=False)
        op.create_index(op.f('ix_bitrix_field_cache_field_id'), 'bitrix_field_cache', ['field_id'], unique=True)
    
    # 3. Локальные лиды
    if 'leads' not in existing_tables:
        op.create_table(
            'leads',
            sa.Column('id', sa.Integer(), autoincrement=False, nullable=False),
            sa.Column('name', sa.String(), nullable=True),
            sa.Column('scouter', sa.String(), nullable=True),
            sa.Column('criado', sa.DateTime(timezone=True), nullable=True),
            sa.Column('data', sa.JSON(), nullable=False),
            sa.Column('raw', sa.JSON(), nullable=True),
            sa.Column('sync_source', sa.String(), nullable=True),
            sa.Column('last_sync_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
            sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_leads_scouter'), 'leads', ['scouter'], unique=False)
        op.create_index(op.f('ix_leads_criado'), 'leads', ['criado'], unique=False)
        op.create_index(op.f('ix_leads_updated_at'), 'leads', ['updated_at'], unique=False)
    
    # 4. Джобы сверки
    if 'reconciliation_jobs' not in existing_tables:
        op.create_table(
            'reconciliation_jobs',
            sa.Column('id', sa.String(length=36), nullable=False),
            sa.Column('status', sa.Enum('PENDING', 'RUNNING', 'COMPLETED', 'FAILED', 'CANCELLED', name='jobstatus'), nullable=False),
            sa.Column('stage', sa.Enum('LISTING_REMOTE', 'COMPARING', 'IMPORTING', name='jobstage'), nullable=True),
            sa.Column('scouter_name', sa.String(), nullable=True),
            sa.Column('date_from', sa.Date(), nullable=True),
            sa.Column('date_to', sa.Date(), nullable=True),
            sa.Column('bitrix_total', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('scanned_count', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('db_total', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('missing_count', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('synced_count', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('error_count', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('cursor_start', sa.Integer(), nullable=True),
            sa.Column('error_details', sa.JSON(), nullable=False),
            sa.Column('error_message', sa.Text(), nullable=True),
            sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('last_heartbeat_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
            sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_reconciliation_jobs_status'), 'reconciliation_jobs', ['status'], unique=False)
        op.create_index(op.f('ix_reconciliation_jobs_created_at'), 'reconciliation_jobs', ['created_at'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_reconciliation_jobs_created_at'), table_name='reconciliation_jobs')
    op.drop_index(op.f('ix_reconciliation_jobs_status'), table_name='reconciliation_jobs')
    op.drop_table('reconciliation_jobs')
    op.drop_index(op.f('ix_leads_updated_at'), table_name='leads')
    op.drop_index(op.f('ix_leads_criado'), table_name='leads')
    op.drop_index(op.f('ix_leads_scouter'), table_name='leads')
    op.drop_table('leads')
    op.drop_index(op.f('ix_bitrix_field_cache_field_id'), table_name='bitrix_field_cache')
    op.drop_index(op.f('ix_bitrix_field_cache_id'), table_name='bitrix_field_cache')
    op.drop_table('bitrix_field_cache')
    op.drop_index(op.f('ix_field_mappings_target_field'), table_name='field_mappings')
    op.drop_index(op.f('ix_field_mappings_source_field'), table_name='field_mappings')
    op.drop_index(op.f('ix_field_mappings_id'), table_name='field_mappings')
    op.drop_table('field_mappings')
