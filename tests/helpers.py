import base64
import hashlib
from datetime import datetime, timedelta, timezone

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

API = "/api/v1"

KDF_PARAMS = {
    "algorithm": "Argon2id",
    "iterations": 1000,
    "keyLength": 32,
    "memoryKb": 65536,
    "parallelism": 4,
}


def client_password_hash(password: str) -> str:
    """Stand-in for the hash a client derives from the plaintext password."""
    return hashlib.sha256(password.encode("utf-8")).hexdigest()


class DeviceKey:
    """An RSA key pair as held by a client device."""

    def __init__(self):
        self.private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)

    @property
    def public_pem(self) -> bytes:
        return self.private_key.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )

    def decrypt(self, encrypted: str) -> str:
        return self.private_key.decrypt(
            base64.b64decode(encrypted),
            padding.OAEP(
                mgf=padding.MGF1(algorithm=hashes.SHA256()),
                algorithm=hashes.SHA256(),
                label=None,
            ),
        ).decode("utf-8")


class FakeClock:
    def __init__(self):
        self.now = datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)

