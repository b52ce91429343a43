"""
SQL User Directory
Resolves sender ids to display labels (the user's email)
"""
import asyncio
from typing import Dict, Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from campusnest.errors import DirectoryUnavailable
from campusnest.models import User
from campusnest.services.collaborators import UserDirectory


class SqlUserDirectory(UserDirectory):
    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory
    
    async def batch_resolve_display_label(self, sender_ids: Iterable[str]) -> Dict[str, str]:
        ids = list(set(sender_ids))
        if not ids:
            return {}
        return await asyncio.to_thread(self._batch_resolve, ids)
    
    async def resolve_display_label(self, sender_id: str) -> Optional[str]:
        labels = await asyncio.to_thread(self._batch_resolve, [sender_id])
        return labels.get(sender_id)
    
    def _batch_resolve(self, ids) -> Dict[str, str]:
        try:
            with self.session_factory() as db:
                rows = db.query(User.id, User.email).filter(User.id.in_(ids)).all()
                return {user_id: email for user_id, email in rows}
        except SQLAlchemyError as e:
            raise DirectoryUnavailable(str(e)) from e
