"""
User profile as seen by the leave engine.
Identity itself is managed upstream; this table holds the workflow preferences.
"""
from sqlalchemy import Column, Integer, String, Enum, DateTime, Boolean
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum
from leavedesk.database import Base


class UserRole(str, enum.Enum):
    """
    Hierarchy (most to least permissions):
    - HR_ADMIN: balance adjustments, carry-over, cancelling any request
    - MANAGER: approves requests routed to them
    - EMPLOYEE: self-service access
    """
    HR_ADMIN = "HR_ADMIN"
    MANAGER = "MANAGER"
    EMPLOYEE = "EMPLOYEE"


class ApprovalLogic(str, enum.Enum):
    """Whether one approval per level, or every approver's action, completes a request."""
    ANY_MANAGER = "any_manager"
    ALL_MANAGERS = "all_managers"


class UserProfile(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    full_name = Column(String, nullable=True)
    company_id = Column(Integer, index=True, nullable=True)

    role = Column(Enum(UserRole), default=UserRole.EMPLOYEE, nullable=False)
    approval_logic = Column(Enum(ApprovalLogic), default=ApprovalLogic.ANY_MANAGER, nullable=False)

    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    manager_relationships = relationship(
        "ManagerRelationship", foreign_keys="ManagerRelationship.user_id", back_populates="user"
    )

    def __repr__(self):
        return f"<UserProfile {self.email} ({self.role.value})>"

    @property
    def is_hr_admin(self) -> bool:
        return self.role == UserRole.HR_ADMIN
