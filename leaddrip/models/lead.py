"""
Lead model — one row per company per user, deduplicated by (user_id, domain).

The full LeadRecord lives in `payload`; the scalar columns are what the store
filters and sorts on.
"""
from sqlalchemy import Column, Float, Text, DateTime, JSON, UniqueConstraint, Index
from sqlalchemy.sql import func

from leaddrip.database import Base


class Lead(Base):
    __tablename__ = 'leads'

    id = Column(Text, primary_key=True)
    user_id = Column(Text, nullable=False)
    run_id = Column(Text, nullable=True)
    domain = Column(Text, nullable=False)
    company_name = Column(Text, default='')
    date = Column(Text, nullable=False)               # YYYY-MM-DD the lead was generated
    score = Column(Float, default=0.0)
    status = Column(Text, default='new')
    payload = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint('user_id', 'domain', name='uq_lead_user_domain'),
        Index('ix_leads_user_created', 'user_id', 'created_at'),
    )
