"""Models package initialization"""
from campusnest.models.user import User
from campusnest.models.application import Application
from campusnest.models.message import Message

__all__ = ["User", "Application", "Message"]
