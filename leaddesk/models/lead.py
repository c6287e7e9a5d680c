"""
Lead model — one row per CRM opportunity per project, deduplicated by (lead_id, project_id).

crm_data holds the untouched CRM row and is the durable source of truth;
every other column is a projection of it resolved at ingestion.
"""
from sqlalchemy import Column, Integer, Text, DateTime, JSON, UniqueConstraint
from sqlalchemy.sql import func

from leaddesk.database import Base


class Lead(Base):
    __tablename__ = 'leads'

    id = Column(Integer, primary_key=True, autoincrement=True)
    lead_id = Column(Text, nullable=False)      # CRM opportunity id
    project_id = Column(Text, nullable=False)
    name = Column(Text, default='')
    phone = Column(Text, default='')
    email = Column(Text, default='')
    owner = Column(Text, nullable=True)          # closing manager
    manager_rating = Column(Text, nullable=True)
    latest_revisit_date = Column(Text, nullable=True)  # ISO date, drives analysis freshness
    crm_data = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint('lead_id', 'project_id', name='uq_lead_project'),
    )
