from sqlalchemy import Column, Integer, Boolean, ForeignKey
from sqlalchemy.orm import relationship
from leavedesk.database import Base


class ManagerRelationship(Base):
    """Reporting edge; level 1 is the direct manager, higher levels sit further up."""
    __tablename__ = "user_managers"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    manager_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    level = Column(Integer, default=1, nullable=False)
    is_primary = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    user = relationship("UserProfile", foreign_keys=[user_id], back_populates="manager_relationships")
    manager = relationship("UserProfile", foreign_keys=[manager_id])
