"""
Per-user pipeline configuration (offer, ICP, signal library, modes).
"""
from sqlalchemy import Column, Text, DateTime, JSON
from sqlalchemy.sql import func

from leaddrip.database import Base


class UserConfigRow(Base):
    __tablename__ = 'user_configs'

    user_id = Column(Text, primary_key=True)
    config = Column(JSON, nullable=False)             # UserConfig.model_dump()
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
