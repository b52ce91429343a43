"""
Message model - one chat message in an application thread
"""
import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, DateTime, Text, ForeignKey, Index, Uuid
from sqlalchemy.orm import relationship
from campusnest.database import Base


class Message(Base):
    """Immutable chat message; created_at is the display ordering key"""
    
    __tablename__ = "messages"
    
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    application_id = Column(Uuid, ForeignKey("applications.id"), nullable=False)
    sender_id = Column(String(64), ForeignKey("users.id"), nullable=False)
    
    content = Column(Text, nullable=False)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    
    # Relationships
    application = relationship("Application", back_populates="messages")
    sender = relationship("User", back_populates="messages")
    
    __table_args__ = (
        Index("idx_messages_application_created", "application_id", "created_at"),
    )
