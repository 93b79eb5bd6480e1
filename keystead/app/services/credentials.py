# keystead/app/services/credentials.py
"""
Credential verification and registration.

Both operations work on the client-derived password hash; the plaintext
password never reaches the server.
"""
import logging
import uuid

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from keystead.app.core.exceptions import ConflictError, NotFoundError, UnauthorizedError
from keystead.app.db.base import commit_or_raise
from keystead.app.models.user import User
from keystead.app.schemas.user import UserCreate
from keystead.app.security import hashing

logger = logging.getLogger(__name__)


class CredentialVerifier:
    def __init__(self, db: AsyncSession, pepper: str):
        self.db = db
        self.pepper = pepper

    async def register(self, user_in: UserCreate) -> User:
        """
        Create a user from a client-derived password hash.

        Usernames and emails share one login namespace: a username may not
        equal any stored email, nor an email any stored username, otherwise
        one account would shadow the other at `authenticate`.

        Raises:
            ConflictError: username or email already taken
        """
        email = user_in.email.lower()

        result = await self.db.execute(
            select(User.id).where(
                or_(
                    User.username == user_in.username,
                    User.email == user_in.username.lower(),
                )
            )
        )
        if result.first() is not None:
            raise ConflictError("A user with the same username already exists")

        result = await self.db.execute(
            select(User.id).where(
                or_(
                    User.email == email,
                    func.lower(User.username) == email,
                )
            )
        )
        if result.first() is not None:
            raise ConflictError("A user with the same email already exists")

        kdf = user_in.kdf_params
        salt = hashing.generate_salt()
        user = User(
            id=uuid.uuid4(),
            username=user_in.username,
            email=email,
            server_salt=salt,
            server_password_hash=hashing.hash_password(
                self.pepper,
                user_in.password_hash,
                salt,
                kdf.iterations,
                kdf.key_length,
            ),
            kdf_params=kdf.model_dump(),
            email_verified=False,
        )
        self.db.add(user)
        # A concurrent registration with the same name surfaces as ConflictError here
        await commit_or_raise(self.db)
        await self.db.refresh(user)

        logger.info("Registered user %s", user.id)
        return user

    async def authenticate(self, username_or_email: str, client_hash: str) -> uuid.UUID:
        """
        Check a client password hash against the stored server hash.

        Raises:
            NotFoundError: no user with that username or email
            UnauthorizedError: hash does not match
        """
        result = await self.db.execute(
            select(User).where(
                or_(
                    User.username == username_or_email,
                    User.email == username_or_email.lower(),
                )
            )
        )
        user = result.scalars().first()
        if user is None:
            raise NotFoundError("User not found")

        params = user.kdf_params
        if not hashing.verify_password(
            self.pepper,
            client_hash,
            user.server_salt,
            params["iterations"],
            params["key_length"],
            user.server_password_hash,
        ):
            logger.info("Rejected credentials for user %s", user.id)
            raise UnauthorizedError("Invalid credentials")

        return user.id
