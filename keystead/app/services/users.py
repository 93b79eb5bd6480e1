# keystead/app/services/users.py
import logging
import uuid

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from keystead.app.core.exceptions import NotFoundError
from keystead.app.db.base import commit_or_raise
from keystead.app.models.auth_session import AuthSession
from keystead.app.models.device import UserDevice
from keystead.app.models.user import User

logger = logging.getLogger(__name__)


class UserService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, user_id: uuid.UUID) -> User:
        user = await self.db.get(User, user_id)
        if user is None:
            raise NotFoundError("User was not found")
        return user

    async def remove(self, user_id: uuid.UUID) -> uuid.UUID:
        """
        Delete a user with its sessions and device links in one transaction.

        Devices themselves stay: other users may still be linked to them.
        """
        await self.db.execute(delete(AuthSession).where(AuthSession.user_id == user_id))
        await self.db.execute(delete(UserDevice).where(UserDevice.user_id == user_id))
        result = await self.db.execute(delete(User).where(User.id == user_id))
        if result.rowcount != 1:
            await self.db.rollback()
            raise NotFoundError("User was not found")

        await commit_or_raise(self.db)
        logger.info("Removed user %s", user_id)
        return user_id
