"""Create leads, lead_enrichments and lead_analyses

Revision ID: 3f1a9c2d7e60
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1a9c2d7e60'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('leads',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('lead_id', sa.Text(), nullable=False),
        sa.Column('project_id', sa.Text(), nullable=False),
        sa.Column('name', sa.Text(), nullable=True),
        sa.Column('phone', sa.Text(), nullable=True),
        sa.Column('email', sa.Text(), nullable=True),
        sa.Column('owner', sa.Text(), nullable=True),
        sa.Column('manager_rating', sa.Text(), nullable=True),
        sa.Column('latest_revisit_date', sa.Text(), nullable=True),
        sa.Column('crm_data', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('lead_id', 'project_id', name='uq_lead_project'),
    )
    op.create_index('ix_leads_project_id', 'leads', ['project_id'])

    op.create_table('lead_enrichments',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('lead_id', sa.Text(), nullable=False),
        sa.Column('project_id', sa.Text(), nullable=False),
        sa.Column('status', sa.Text(), nullable=False),
        sa.Column('mql_rating', sa.Text(), nullable=True),
        sa.Column('mql_capability', sa.Text(), nullable=True),
        sa.Column('mql_lifestyle', sa.Text(), nullable=True),
        sa.Column('credit_score', sa.Integer(), nullable=True),
        sa.Column('age', sa.Integer(), nullable=True),
        sa.Column('gender', sa.Text(), nullable=True),
        sa.Column('location', sa.Text(), nullable=True),
        sa.Column('locality_grade', sa.Text(), nullable=True),
        sa.Column('employer_name', sa.Text(), nullable=True),
        sa.Column('designation', sa.Text(), nullable=True),
        sa.Column('final_income_lacs', sa.Float(), nullable=True),
        sa.Column('total_loans', sa.Integer(), nullable=True),
        sa.Column('active_loans', sa.Integer(), nullable=True),
        sa.Column('active_emi_burden', sa.Float(), nullable=True),
        sa.Column('emi_to_income_ratio', sa.Text(), nullable=True),
        sa.Column('credit_behavior_signal', sa.Text(), nullable=True),
        sa.Column('raw_response', sa.JSON(), nullable=True),
        sa.Column('enriched_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('lead_id', 'project_id', name='uq_enrichment_lead_project'),
    )
    op.create_index('ix_lead_enrichments_project_id', 'lead_enrichments', ['project_id'])

    op.create_table('lead_analyses',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('lead_id', sa.Text(), nullable=False),
        sa.Column('project_id', sa.Text(), nullable=False),
        sa.Column('rating', sa.Text(), nullable=False),
        sa.Column('insights', sa.Text(), nullable=True),
        sa.Column('full_analysis', sa.JSON(), nullable=True),
        sa.Column('revisit_date_at_analysis', sa.Text(), nullable=True),
        sa.Column('analyzed_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('lead_id', 'project_id', name='uq_analysis_lead_project'),
    )
    op.create_index('ix_lead_analyses_project_id', 'lead_analyses', ['project_id'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_lead_analyses_project_id', table_name='lead_analyses')
    op.drop_table('lead_analyses')
    op.drop_index('ix_lead_enrichments_project_id', table_name='lead_enrichments')
    op.drop_table('lead_enrichments')
    op.drop_index('ix_leads_project_id', table_name='leads')
    op.drop_table('leads')
