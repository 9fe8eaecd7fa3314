"""
Orchestrator - Persistence Models.

job_locks holds one lease row per scheduled job. A lease is
held by one scheduler process until it is released or expires.
"""

from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from database.engine import Base


class JobLease(Base):
    """Expiring lease preventing overlapping runs of a job."""
    
    __tablename__ = "job_locks"
    
    job_name: Mapped[str] = mapped_column(String(64), primary_key=True)
    holder: Mapped[str] = mapped_column(String(128), nullable=False)
    acquired_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    
    def __repr__(self) -> str:
        return f"JobLease(job={self.job_name}, holder={self.holder}, expires_at={self.expires_at})"
