"""
LeadEnrichment model — one row per (lead_id, project_id), written once the
MQL provider call settles (SUCCESS, NO_DATA or FAILED).

raw_response keeps the full provider payload for audit and for the
reconciliation engines, which always re-derive from it.
"""
from sqlalchemy import Column, Integer, Float, Text, DateTime, JSON, UniqueConstraint
from sqlalchemy.sql import func

from leaddesk.database import Base


class LeadEnrichment(Base):
    __tablename__ = 'lead_enrichments'

    id = Column(Integer, primary_key=True, autoincrement=True)
    lead_id = Column(Text, nullable=False)
    project_id = Column(Text, nullable=False)
    status = Column(Text, nullable=False, default='SUCCESS')  # SUCCESS / NO_DATA / FAILED
    mql_rating = Column(Text, nullable=True)
    mql_capability = Column(Text, nullable=True)
    mql_lifestyle = Column(Text, nullable=True)
    credit_score = Column(Integer, nullable=True)
    age = Column(Integer, nullable=True)
    gender = Column(Text, nullable=True)
    location = Column(Text, nullable=True)
    locality_grade = Column(Text, nullable=True)
    employer_name = Column(Text, nullable=True)
    designation = Column(Text, nullable=True)
    final_income_lacs = Column(Float, nullable=True)
    total_loans = Column(Integer, nullable=True)
    active_loans = Column(Integer, nullable=True)
    active_emi_burden = Column(Float, nullable=True)
    emi_to_income_ratio = Column(Text, nullable=True)   # "12.5%" or "N/A"
    credit_behavior_signal = Column(Text, nullable=True)
    raw_response = Column(JSON, nullable=True)
    enriched_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint('lead_id', 'project_id', name='uq_enrichment_lead_project'),
    )
