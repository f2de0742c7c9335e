from sqlalchemy import JSON, Column, ForeignKey, Text
from sqlalchemy.orm import relationship
from tenderflow.database import Base


class JobEvent(Base):
    __tablename__ = "job_events"

    id = Column(Text, primary_key=True)
    job_id = Column(Text, ForeignKey("jobs.id"), nullable=False)
    user_id = Column(Text)
    level = Column(Text, nullable=False)
    message = Column(Text, nullable=False)
    meta = Column(JSON)
    created_at = Column(Text, nullable=False)

    job = relationship("Job", back_populates="events")
