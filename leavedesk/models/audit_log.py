from sqlalchemy import Column, Integer, String, JSON, DateTime
from sqlalchemy.sql import func
from leavedesk.database import Base

class AuditLog(Base):
    """Append-only trail of every ledger and lifecycle mutation."""
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    entity_type = Column(String, nullable=False, index=True)
    entity_id = Column(Integer, nullable=True, index=True)
    action = Column(String, nullable=False)
    old_values = Column(JSON, nullable=True)
    new_values = Column(JSON, nullable=True)
    user_id = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
