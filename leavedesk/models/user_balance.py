from sqlalchemy import Column, Integer, Float, ForeignKey, DateTime, UniqueConstraint
from sqlalchemy.sql import func
from leavedesk.database import Base

class UserBalance(Base):
    """Ledger row for one (user, activity type, year). Never deleted, only zeroed."""
    __tablename__ = "user_balances"
    __table_args__ = (
        UniqueConstraint("user_id", "activity_type_id", "year", name="uq_user_balance_user_type_year"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    activity_type_id = Column(Integer, ForeignKey("activity_types.id"), nullable=False, index=True)
    year = Column(Integer, nullable=False)
    total_days = Column(Float, default=0.0, nullable=False)
    used_days = Column(Float, default=0.0, nullable=False)
    pending_days = Column(Float, default=0.0, nullable=False)
    carried_over_days = Column(Float, default=0.0, nullable=False)
    adjustment_days = Column(Float, default=0.0, nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    version = Column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    @property
    def available_days(self) -> float:
        return (
            self.total_days + self.carried_over_days + self.adjustment_days
            - self.used_days - self.pending_days
        )

    def snapshot(self) -> dict:
        return {
            "total_days": self.total_days,
            "used_days": self.used_days,
            "pending_days": self.pending_days,
            "carried_over_days": self.carried_over_days,
            "adjustment_days": self.adjustment_days,
        }
