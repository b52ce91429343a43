"""
User model - directory entry used to label chat senders
"""
from datetime import datetime, timezone
from sqlalchemy import Column, String, DateTime
from sqlalchemy.orm import relationship
from campusnest.database import Base


class User(Base):
    """A student or property owner known to the marketplace"""
    
    __tablename__ = "users"
    
    # Issued by the auth provider, stored verbatim
    id = Column(String(64), primary_key=True)
    email = Column(String(255), nullable=False, unique=True)
    full_name = Column(String(255), nullable=True)
    
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    
    # Relationships
    messages = relationship("Message", back_populates="sender")
