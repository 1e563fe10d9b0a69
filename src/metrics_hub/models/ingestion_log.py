"""Ingestion audit log table."""

from sqlalchemy import JSON, Column, Date, DateTime, Integer, String, Text

from metrics_hub.models.base import Base, new_id, utcnow

LOG_STATUSES = ("running", "success", "partial", "failed")
TERMINAL_STATUSES = ("success", "partial", "failed")


class IngestionLog(Base):
    """One (source, date) attempt. Never deleted."""

    __tablename__ = "ingestion_logs"

    id = Column(String(36), primary_key=True, default=new_id)
    source = Column(String(100), nullable=False, index=True)
    app_id = Column(String(36))
    provider_id = Column(String(36))
    date = Column(Date, nullable=False, index=True)
    started_at = Column(DateTime, nullable=False, default=utcnow)
    completed_at = Column(DateTime)
    status = Column(String(20), nullable=False, default="running", index=True)
    records_processed = Column(Integer, nullable=False, default=0)
    error_message = Column(Text)
    error_details = Column(JSON)
    request_metadata = Column(JSON)
    response_metadata = Column(JSON)
    created_at = Column(DateTime, default=utcnow)

    def __repr__(self):
        return f"<IngestionLog(source={self.source}, date={self.date}, status={self.status})>"
