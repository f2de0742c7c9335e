from sqlalchemy import Column, Text
from sqlalchemy.orm import relationship
from tenderflow.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Text, primary_key=True)
    email = Column(Text, nullable=False, unique=True)
    token_hash = Column(Text, nullable=False, unique=True)
    created_at = Column(Text, nullable=False)

    jobs = relationship("Job", back_populates="user")
