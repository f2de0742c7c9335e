from sqlalchemy import Column, ForeignKey, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from tenderflow.database import Base


class WorkItem(Base):
    __tablename__ = "job_work_items"
    __table_args__ = (UniqueConstraint("job_id", "type", "ref_key"),)

    id = Column(Text, primary_key=True)
    job_id = Column(Text, ForeignKey("jobs.id"), nullable=False)
    user_id = Column(Text)
    type = Column(Text, nullable=False)
    ref_key = Column(Text, nullable=False)
    title = Column(Text)
    status = Column(Text, nullable=False, default="todo")
    owner_label = Column(Text)
    due_at = Column(Text)
    notes = Column(Text)
    created_at = Column(Text, nullable=False)
    updated_at = Column(Text, nullable=False)

    job = relationship("Job", back_populates="work_items")
