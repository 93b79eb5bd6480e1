from keystead.app.models.user import User
from keystead.app.models.device import Device, DeviceChallenge, UserDevice
from keystead.app.models.auth_session import AuthSession

__all__ = ["User", "Device", "DeviceChallenge", "UserDevice", "AuthSession"]
