# keystead/app/models/auth_session.py
import uuid

from sqlalchemy import Column, String, Text, DateTime, ForeignKey, UniqueConstraint, Uuid
from sqlalchemy.sql import func

from keystead.app.db.base import Base


class AuthSession(Base):
    """
    Server-side session of one user on one device.

    The stored refresh token is replaced on every challenge-verified login
    and compared verbatim on refresh, so a rotated-out token stops working.
    """
    __tablename__ = "sessions"
    __table_args__ = (
        UniqueConstraint("user_id", "device_id", name="uq_sessions_user_device"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    device_id = Column(Uuid, ForeignKey("devices.id", ondelete="CASCADE"), nullable=False, index=True)

    refresh_token = Column(Text, nullable=False)

    ip_address = Column(String(64), nullable=False)
    user_agent = Column(String(512), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now()
    )
