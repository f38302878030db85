"""
Watch lists — named sets of accounts a user wants re-checked for signals.
"""
from sqlalchemy import Column, Integer, Text, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func

from leaddrip.database import Base


ACCOUNT_STATUSES = ('active', 'paused', 'archived')


class WatchList(Base):
    __tablename__ = 'lists'

    id = Column(Text, primary_key=True)
    user_id = Column(Text, nullable=False)
    name = Column(Text, nullable=False)
    type = Column(Text, nullable=False, default='watch')
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class ListAccount(Base):
    __tablename__ = 'list_accounts'

    id = Column(Integer, primary_key=True, autoincrement=True)
    list_id = Column(Text, ForeignKey('lists.id'), nullable=False)
    domain = Column(Text, nullable=False)
    company_name = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default='active')
    added_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint('list_id', 'domain', name='uq_list_account_domain'),
    )
