import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB

from app.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RecordStatus(str, enum.Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    ARCHIVED = "archived"


# Generated-on / valid-upto keys injected into form_data in display format
GENERATED_ON_KEY = "generated_on"
VALID_UPTO_KEY = "valid_upto"


class Record(Base):
    __tablename__ = "records"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    form_data = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=False)
    generated_on = Column(DateTime(timezone=True), nullable=False)
    valid_upto = Column(DateTime(timezone=True), nullable=False)
    status = Column(String(20), default=RecordStatus.ACTIVE.value, nullable=False)
    public_token = Column(String(32), nullable=False)
    qr_code_url = Column(Text, nullable=True)
    pdf_url = Column(Text, nullable=True)
    total_scans = Column(Integer, default=0, nullable=False)
    last_scan_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
    archived_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("public_token", name="uq_records_public_token"),
        Index("idx_records_user_created", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Record id={self.id} token={self.public_token} status={self.status}>"
