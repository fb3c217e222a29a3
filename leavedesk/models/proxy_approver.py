from sqlalchemy import Column, Integer, String, Date, Boolean, DateTime, ForeignKey
from sqlalchemy.sql import func
from leavedesk.database import Base


class ProxyAssignment(Base):
    """Time-bounded delegation of an approver's duties. Both dates are inclusive."""
    __tablename__ = "proxy_approvers"

    id = Column(Integer, primary_key=True, index=True)
    original_approver_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    proxy_user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    reason = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
