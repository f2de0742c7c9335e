from sqlalchemy import JSON, Column, ForeignKey, Text
from sqlalchemy.orm import relationship
from tenderflow.database import Base


class JobResult(Base):
    __tablename__ = "job_results"

    job_id = Column(Text, ForeignKey("jobs.id"), primary_key=True)
    user_id = Column(Text)
    extracted_text = Column(Text)
    executive_summary = Column(JSON)
    requirements = Column(JSON)
    risks = Column(JSON)
    clarifications = Column(JSON)
    outline = Column(JSON)
    evidence = Column(JSON)
    updated_at = Column(Text, nullable=False)

    job = relationship("Job", back_populates="result")
