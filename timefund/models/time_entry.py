from datetime import datetime
from typing import Literal

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship

from timefund.db.session import Base

EntryType = Literal["work", "vacation", "sick_leave", "holiday", "other"]


class TimeEntry(Base):
    __tablename__ = "time_entries"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    hours = Column(Numeric(5, 2), nullable=False)
    description = Column(Text, nullable=True)
    entry_type = Column(String(20), nullable=False, default="work")
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="time_entries")
    project = relationship("Project", back_populates="time_entries")
    funding = relationship(
        "TimeEntryFunding",
        back_populates="time_entry",
        cascade="all, delete-orphan",
        order_by="TimeEntryFunding.funding_source_id",
    )


class TimeEntryFunding(Base):
    __tablename__ = "time_entry_funding"

    time_entry_id = Column(Integer, ForeignKey("time_entries.id", ondelete="CASCADE"), primary_key=True)
    funding_source_id = Column(
        Integer, ForeignKey("funding_sources.id", ondelete="CASCADE"), primary_key=True
    )
    percentage = Column(Numeric(5, 2), nullable=False, default=100)
    hours = Column(Numeric(5, 2), nullable=False)

    time_entry = relationship("TimeEntry", back_populates="funding")
    funding_source = relationship("FundingSource")
