"""
Do-not-contact entries. Domains and company names are checked before any
candidate is researched; person entries are kept for outreach tooling.
"""
from sqlalchemy import Column, Integer, Text, DateTime, UniqueConstraint
from sqlalchemy.sql import func

from leaddrip.database import Base


DNC_TYPES = ('company', 'domain', 'person')


class DoNotContact(Base):
    __tablename__ = 'do_not_contact'

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Text, nullable=False)
    type = Column(Text, nullable=False)
    value = Column(Text, nullable=False)              # normalized domain / lowercased name
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint('user_id', 'type', 'value', name='uq_dnc_user_type_value'),
    )
