from sqlalchemy import Column, Integer, String, Date, Boolean
from leavedesk.database import Base


class Holiday(Base):
    __tablename__ = "holidays"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, nullable=True, index=True)  # NULL = global holiday
    name = Column(String, nullable=False)
    date = Column(Date, nullable=False, index=True)
    is_recurring_yearly = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
