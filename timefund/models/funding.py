from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship

from timefund.db.session import Base


class FundingSource(Base):
    __tablename__ = "funding_sources"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class ProjectFunding(Base):
    __tablename__ = "project_funding"

    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), primary_key=True)
    funding_source_id = Column(
        Integer, ForeignKey("funding_sources.id", ondelete="CASCADE"), primary_key=True
    )
    amount = Column(Numeric(10, 2), nullable=False, default=0)
    percentage = Column(Numeric(5, 2), nullable=False, default=0)

    project = relationship("Project", back_populates="funding")
    funding_source = relationship("FundingSource")
