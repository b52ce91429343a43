"""
Campusnest package initialization - SQLAlchemy models
"""
from campusnest.database import Base
from campusnest.models.user import User
from campusnest.models.application import Application
from campusnest.models.message import Message

__all__ = ["Base", "User", "Application", "Message"]
