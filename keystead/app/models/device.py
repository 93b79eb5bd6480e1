# keystead/app/models/device.py
"""
ORM models for device trust.

A device is a root entity identified by the SHA-256 fingerprint of its
public key. It is linked to users only after it has answered a challenge
for them.
"""
import uuid

from sqlalchemy import Column, String, DateTime, ForeignKey, LargeBinary, Uuid
from sqlalchemy.sql import func

from keystead.app.db.base import Base


class Device(Base):
    __tablename__ = "devices"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    # hex SHA-256 of public_key
    fingerprint = Column(String(64), unique=True, index=True, nullable=False)

    # PEM-encoded RSA public key, as received
    public_key = Column(LargeBinary(8192), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    last_seen = Column(DateTime(timezone=True), nullable=True)


class DeviceChallenge(Base):
    """
    The outstanding challenge of a device.

    Keyed by device_id: issuing a new challenge replaces the row, so there is
    never more than one pending per device. Rows older than the challenge TTL
    count as absent and may be purged at any time.
    """
    __tablename__ = "device_challenges"

    device_id = Column(
        Uuid,
        ForeignKey("devices.id", ondelete="CASCADE"),
        primary_key=True,
    )

    # Canonical JSON bytes of the challenge payload
    challenge = Column(LargeBinary(8192), nullable=False)
    issued_at = Column(DateTime(timezone=True), nullable=False, index=True)


class UserDevice(Base):
    __tablename__ = "user_devices"

    user_id = Column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )
    device_id = Column(
        Uuid,
        ForeignKey("devices.id", ondelete="CASCADE"),
        primary_key=True,
    )

    linked_at = Column(DateTime(timezone=True), server_default=func.now())
