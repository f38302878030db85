"""
Postgres-backed signal run record — the persisted copy of a SignalRun.
"""
from sqlalchemy import Column, Text, Integer, DateTime, JSON, Index
from sqlalchemy.sql import func

from leaddrip.database import Base


class DbSignalRun(Base):
    __tablename__ = 'signal_runs'

    id = Column(Text, primary_key=True)
    user_id = Column(Text, nullable=False)
    mode = Column(Text, nullable=False)               # hunt / watch
    list_id = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default='pending')
    stats = Column(JSON, default=dict)
    errors = Column(JSON, default=list)               # last 50 unit errors
    error_count = Column(Integer, default=0)
    error = Column(Text, nullable=True)               # run-fatal reason
    summary = Column(Text, nullable=True)
    usage = Column(JSON, nullable=True)
    started_at = Column(DateTime(timezone=True), server_default=func.now())
    finished_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index('ix_signal_runs_user_started', 'user_id', 'started_at'),
    )
