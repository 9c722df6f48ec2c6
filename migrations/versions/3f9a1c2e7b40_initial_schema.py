"""initial_schema

Revision ID: 3f9a1c2e7b40
Revises:
Create Date: 2026-09-02 10:14:08.412377+00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '3f9a1c2e7b40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # 1. properties (no FKs)
    op.create_table('properties',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('name', sa.String(length=100), nullable=False),
    sa.Column('address', sa.String(length=255), nullable=False),
    sa.Column('type', sa.String(length=20), nullable=False),
    sa.Column('bedrooms', sa.Integer(), nullable=False),
    sa.Column('bathrooms', sa.Integer(), nullable=False),
    sa.Column('size', sa.Integer(), nullable=False),
    sa.Column('rent', sa.Numeric(precision=12, scale=2), nullable=False),
    sa.Column('status', sa.String(length=20), nullable=False),
    sa.Column('description', sa.Text(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.CheckConstraint('rent > 0', name='chk_property_rent'),
    sa.CheckConstraint("type IN ('apartment','house','condo','townhouse','studio')", name='chk_property_type'),
    sa.CheckConstraint("status IN ('available','occupied','maintenance','inactive')", name='chk_property_status'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_properties_status', 'properties', ['status'], unique=False)

    # 2. tenants (renters, FK to properties)
    op.create_table('tenants',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('property_id', sa.UUID(), nullable=True),
    sa.Column('name', sa.String(length=100), nullable=False),
    sa.Column('email', sa.String(length=255), nullable=False),
    sa.Column('phone', sa.String(length=20), nullable=False),
    sa.Column('rent', sa.Numeric(precision=12, scale=2), nullable=False),
    sa.Column('deposit', sa.Numeric(precision=12, scale=2), nullable=True),
    sa.Column('lease_start', sa.Date(), nullable=False),
    sa.Column('lease_end', sa.Date(), nullable=False),
    sa.Column('status', sa.String(length=20), nullable=False),
    sa.Column('notes', sa.Text(), nullable=True),
    sa.Column('emergency_contacts', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column('avatar_url', sa.Text(), nullable=True),
    sa.Column('id_document_url', sa.Text(), nullable=True),
    sa.Column('lease_document_url', sa.Text(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.CheckConstraint('lease_end >= lease_start', name='chk_tenant_lease_dates'),
    sa.CheckConstraint("status IN ('active','inactive','overdue','pending')", name='chk_tenant_status'),
    sa.ForeignKeyConstraint(['property_id'], ['properties.id'], ondelete='SET NULL'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_tenants_property', 'tenants', ['property_id'], unique=False)
    op.create_index('idx_tenants_status', 'tenants', ['status'], unique=False)

    # 3. payments (FK to tenants + properties)
    op.create_table('payments',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('tenant_id', sa.UUID(), nullable=False),
    sa.Column('property_id', sa.UUID(), nullable=True),
    sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False),
    sa.Column('currency', sa.String(length=3), nullable=False),
    sa.Column('status', sa.String(length=20), nullable=False),
    sa.Column('payment_method', sa.String(length=20), nullable=False),
    sa.Column('due_date', sa.Date(), nullable=False),
    sa.Column('paid_date', sa.Date(), nullable=True),
    sa.Column('momo_channel', sa.String(length=20), nullable=True),
    sa.Column('momo_reference_id', sa.String(length=64), nullable=True),
    sa.Column('momo_external_id', sa.String(length=64), nullable=True),
    sa.Column('momo_request_status', sa.String(length=20), nullable=True),
    sa.Column('momo_invoice_status', sa.String(length=20), nullable=True),
    sa.Column('momo_financial_transaction_id', sa.String(length=64), nullable=True),
    sa.Column('momo_error_code', sa.String(length=100), nullable=True),
    sa.Column('momo_error_message', sa.Text(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.CheckConstraint('amount > 0', name='chk_payment_amount'),
    sa.CheckConstraint("status IN ('pending','paid','overdue','failed','expired','cancelled')", name='chk_payment_status'),
    sa.CheckConstraint("payment_method IN ('mtn_momo','bank_transfer','cash','check')", name='chk_payment_method'),
    sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ondelete='CASCADE'),
    sa.ForeignKeyConstraint(['property_id'], ['properties.id'], ondelete='SET NULL'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_payments_tenant', 'payments', ['tenant_id'], unique=False)
    op.create_index('idx_payments_status', 'payments', ['status'], unique=False)
    op.create_index('idx_payments_momo_reference', 'payments', ['momo_reference_id'], unique=True)
    op.create_index('idx_payments_momo_external', 'payments', ['momo_external_id'], unique=False)

    # 4. audit_logs (no FKs, entity_id is polymorphic)
    op.create_table('audit_logs',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('actor_id', sa.String(length=64), nullable=True),
    sa.Column('actor_email', sa.String(length=255), nullable=True),
    sa.Column('action', sa.String(length=100), nullable=False),
    sa.Column('entity_type', sa.String(length=50), nullable=False),
    sa.Column('entity_id', sa.UUID(), nullable=False),
    sa.Column('before_state', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column('after_state', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column('changed_fields', postgresql.ARRAY(sa.Text()), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_audit_entity', 'audit_logs', ['entity_type', 'entity_id'], unique=False)
    op.create_index('idx_audit_created', 'audit_logs', [sa.text('created_at DESC')], unique=False)


def downgrade() -> None:
    op.drop_index('idx_audit_created', table_name='audit_logs')
    op.drop_index('idx_audit_entity', table_name='audit_logs')
    op.drop_table('audit_logs')
    op.drop_index('idx_payments_momo_external', table_name='payments')
    op.drop_index('idx_payments_momo_reference', table_name='payments')
    op.drop_index('idx_payments_status', table_name='payments')
    op.drop_index('idx_payments_tenant', table_name='payments')
    op.drop_table('payments')
    op.drop_index('idx_tenants_status', table_name='tenants')
    op.drop_index('idx_tenants_property', table_name='tenants')
    op.drop_table('tenants')
    op.drop_index('idx_properties_status', table_name='properties')
    op.drop_table('properties')
