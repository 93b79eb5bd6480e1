# keystead/app/services/devices.py
import logging
import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from keystead.app.core.exceptions import ConflictError
from keystead.app.db.base import commit_or_raise
from keystead.app.models.device import Device
from keystead.app.security.keys import compute_fingerprint, load_public_key

logger = logging.getLogger(__name__)


class DeviceRegistry:
    """Devices are keyed by the fingerprint of their public key, not by user."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, device_id: uuid.UUID) -> Optional[Device]:
        return await self.db.get(Device, device_id)

    async def get_by_fingerprint(self, fingerprint: str) -> Optional[Device]:
        result = await self.db.execute(select(Device).where(Device.fingerprint == fingerprint))
        return result.scalars().first()

    async def find_or_register(self, public_key: bytes) -> Device:
        """
        Return the device owning `public_key`, creating it on first contact.

        Raises:
            PayloadFormatError: the key is not a usable RSA public key
        """
        fingerprint = compute_fingerprint(public_key)

        device = await self.get_by_fingerprint(fingerprint)
        if device is not None:
            return device

        # Only keys we can encrypt to get a row
        load_public_key(public_key)

        device = Device(id=uuid.uuid4(), fingerprint=fingerprint, public_key=public_key)
        self.db.add(device)
        try:
            await commit_or_raise(self.db)
        except ConflictError:
            # Lost the insert race to a request with the same key
            device = await self.get_by_fingerprint(fingerprint)
            if device is None:
                raise
            return device

        logger.info("Registered device %s", device.id)
        return device
