from sqlalchemy import Column, ForeignKey, Text
from sqlalchemy.orm import relationship
from tenderflow.database import Base


class Job(Base):
    __tablename__ = "jobs"

    id = Column(Text, primary_key=True)
    user_id = Column(Text, ForeignKey("users.id"), nullable=False)
    file_name = Column(Text, nullable=False)
    file_path = Column(Text)
    source_type = Column(Text, nullable=False)
    status = Column(Text, nullable=False, default="queued")
    error_message = Column(Text)
    created_at = Column(Text, nullable=False)
    updated_at = Column(Text, nullable=False)

    user = relationship("User", back_populates="jobs")
    events = relationship("JobEvent", back_populates="job", order_by="JobEvent.created_at")
    result = relationship("JobResult", back_populates="job", uselist=False)
    work_items = relationship("WorkItem", back_populates="job")
