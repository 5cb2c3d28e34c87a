"""Scan log model: one append-only row per public view of a record."""

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text

from app.database import Base
from app.models.record import utcnow


class ScanLog(Base):
    __tablename__ = "scan_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    record_id = Column(String(36), ForeignKey("records.id", ondelete="CASCADE"), nullable=False)
    scanned_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    user_agent = Column(Text, nullable=True)
    ip_address = Column(String(45), nullable=True)
    referrer = Column(Text, nullable=True)
    session_id = Column(String(128), nullable=True)

    __table_args__ = (Index("idx_scan_logs_record_scanned", "record_id", "scanned_at"),)
