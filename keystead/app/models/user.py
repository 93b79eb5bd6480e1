# keystead/app/models/user.py
import uuid

from sqlalchemy import Column, String, Boolean, DateTime, JSON, Uuid
from sqlalchemy.sql import func

from keystead.app.db.base import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    username = Column(String(64), unique=True, index=True, nullable=False)
    email = Column(String(254), unique=True, index=True, nullable=False)

    # PBKDF2(client hash + pepper, server_salt). Never serialized out.
    server_password_hash = Column(String(4096), nullable=False)
    # base64, 32 random bytes
    server_salt = Column(String(256), nullable=False)

    # Parameters the client used to derive its password hash.
    # iterations/key_length are reused for the server-side PBKDF2.
    # {"algorithm", "iterations", "key_length", "memory_kb", "parallelism"}
    kdf_params = Column(JSON, nullable=False)

    email_verified = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
