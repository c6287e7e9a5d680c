"""
LeadAnalysis model — one row per (lead_id, project_id), the stored AI score.

revisit_date_at_analysis snapshots the lead's latest revisit date when the
analysis ran; a different current value marks the row as stale.
"""
from sqlalchemy import Column, Integer, Text, DateTime, JSON, UniqueConstraint
from sqlalchemy.sql import func

from leaddesk.database import Base


class LeadAnalysis(Base):
    __tablename__ = 'lead_analyses'

    id = Column(Integer, primary_key=True, autoincrement=True)
    lead_id = Column(Text, nullable=False)
    project_id = Column(Text, nullable=False)
    rating = Column(Text, nullable=False)             # Hot / Warm / Cold
    insights = Column(Text, nullable=True)
    full_analysis = Column(JSON, nullable=True)        # persona, concerns, pps_score, ...
    revisit_date_at_analysis = Column(Text, nullable=True)
    analyzed_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint('lead_id', 'project_id', name='uq_analysis_lead_project'),
    )
