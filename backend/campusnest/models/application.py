"""
Application model - a student's application to a listing

The application id doubles as the conversation id of the chat thread
between the applicant and the listing owner.
"""
import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, DateTime, Text, ForeignKey, Uuid
from sqlalchemy.orm import relationship
from campusnest.database import Base


class Application(Base):
    """Represents an application to a housing listing"""
    
    __tablename__ = "applications"
    
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    listing_id = Column(String(64), nullable=False, index=True)
    applicant_id = Column(String(64), ForeignKey("users.id"), nullable=False)
    owner_id = Column(String(64), ForeignKey("users.id"), nullable=False)
    
    # Shown in the chat pane until the first message is sent
    message = Column(Text, nullable=True)
    status = Column(String(20), default="pending")  # pending, accepted, rejected
    
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    
    # Relationships
    messages = relationship("Message", back_populates="application", cascade="all, delete-orphan")
