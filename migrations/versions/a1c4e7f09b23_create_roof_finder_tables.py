"""Create roof finder tables

Revision ID: a1c4e7f09b23
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'a1c4e7f09b23'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


condition_label = sa.Enum(
    'dirty', 'aged', 'patched', 'ponding', 'damaged', 'other', name='roof_condition_label'
)
lead_status = sa.Enum(
    'new', 'assessed', 'contacted', 'qualified', 'converted', 'rejected', name='roof_lead_status'
)
task_status = sa.Enum('PENDING', 'IN_PROGRESS', 'COMPLETED', 'CANCELLED', name='taskstatus')
task_priority = sa.Enum('LOW', 'MEDIUM', 'HIGH', 'URGENT', name='taskpriority')


def upgrade() -> None:
    # Prospects table
    op.create_table(
        'prospects',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('address', sa.String(500), nullable=True),
        sa.Column('city', sa.String(100), nullable=True),
        sa.Column('state', sa.String(50), nullable=True),
        sa.Column('zip_code', sa.String(20), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('tags', sa.JSON(), nullable=False),
        sa.Column('source', sa.String(100), nullable=True),
        sa.Column('status', sa.String(30), nullable=False, server_default='uncontacted'),
        sa.Column('created_by', sa.Uuid(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_prospects_id', 'prospects', ['id'])

    # Properties table
    op.create_table(
        'properties',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('account_id', sa.Uuid(), nullable=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('address', sa.String(500), nullable=False),
        sa.Column('city', sa.String(100), nullable=True),
        sa.Column('state', sa.String(50), nullable=True),
        sa.Column('zip_code', sa.String(20), nullable=True),
        sa.Column('building_type', sa.String(100), nullable=True),
        sa.Column('square_footage', sa.Float(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_properties_account_id', 'properties', ['account_id'])

    # Roof leads table
    op.create_table(
        'roof_leads',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('geometry', sa.Text(), nullable=False),
        sa.Column('geometry_type', sa.String(16), nullable=False),
        sa.Column('min_lng', sa.Float(), nullable=True),
        sa.Column('min_lat', sa.Float(), nullable=True),
        sa.Column('max_lng', sa.Float(), nullable=True),
        sa.Column('max_lat', sa.Float(), nullable=True),
        sa.Column('condition_label', condition_label, nullable=False, server_default='other'),
        sa.Column('condition_score', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('status', lead_status, nullable=False, server_default='new'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('address', sa.String(500), nullable=True),
        sa.Column('city', sa.String(100), nullable=True),
        sa.Column('state', sa.String(50), nullable=True),
        sa.Column('zip_code', sa.String(20), nullable=True),
        sa.Column('estimated_sqft', sa.Float(), nullable=True),
        sa.Column('estimated_repair_cost', sa.Float(), nullable=True),
        sa.Column('linked_prospect_id', sa.Uuid(), nullable=True),
        sa.Column('linked_account_id', sa.Uuid(), nullable=True),
        sa.Column('linked_property_id', sa.Uuid(), nullable=True),
        sa.Column('created_by', sa.Uuid(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['linked_prospect_id'], ['prospects.id']),
        sa.ForeignKeyConstraint(['linked_property_id'], ['properties.id']),
        sa.CheckConstraint('condition_score BETWEEN 1 AND 5', name='ck_roof_leads_score'),
    )
    op.create_index('ix_roof_leads_status', 'roof_leads', ['status'])
    op.create_index('ix_roof_leads_created_by', 'roof_leads', ['created_by'])
    for column in ('min_lng', 'min_lat', 'max_lng', 'max_lat'):
        op.create_index(f'ix_roof_leads_{column}', 'roof_leads', [column])

    # Roof lead tags table
    op.create_table(
        'roof_lead_tags',
        sa.Column('roof_lead_id', sa.Uuid(), nullable=False),
        sa.Column('tag', sa.String(100), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.PrimaryKeyConstraint('roof_lead_id', 'tag'),
        sa.ForeignKeyConstraint(['roof_lead_id'], ['roof_leads.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_roof_lead_tags_tag', 'roof_lead_tags', ['tag'])

    # Roof lead images table
    op.create_table(
        'roof_lead_images',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('roof_lead_id', sa.Uuid(), nullable=False),
        sa.Column('file_name', sa.String(255), nullable=False),
        sa.Column('file_path', sa.String(500), nullable=False),
        sa.Column('file_size', sa.Integer(), nullable=True),
        sa.Column('mime_type', sa.String(100), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('uploaded_by', sa.Uuid(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['roof_lead_id'], ['roof_leads.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_roof_lead_images_roof_lead_id', 'roof_lead_images', ['roof_lead_id'])

    # Tasks table
    op.create_table(
        'tasks',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', sa.String(50), nullable=True),
        sa.Column('status', task_status, nullable=True),
        sa.Column('priority', task_priority, nullable=True),
        sa.Column('due_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('account_id', sa.Uuid(), nullable=True),
        sa.Column('property_id', sa.Uuid(), nullable=True),
        sa.Column('prospect_id', sa.Uuid(), nullable=True),
        sa.Column('roof_lead_id', sa.Uuid(), nullable=True),
        sa.Column('assigned_by', sa.Uuid(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['property_id'], ['properties.id']),
        sa.ForeignKeyConstraint(['prospect_id'], ['prospects.id']),
        sa.ForeignKeyConstraint(['roof_lead_id'], ['roof_leads.id'], ondelete='SET NULL'),
    )
    op.create_index('ix_tasks_id', 'tasks', ['id'])
    op.create_index('ix_tasks_roof_lead_id', 'tasks', ['roof_lead_id'])


def downgrade() -> None:
    op.drop_table('tasks')
    op.drop_table('roof_lead_images')
    op.drop_table('roof_lead_tags')
    op.drop_table('roof_leads')
    op.drop_table('properties')
    op.drop_table('prospects')

    bind = op.get_bind()
    for enum in (task_priority, task_status, lead_status, condition_label):
        enum.drop(bind, checkfirst=True)
