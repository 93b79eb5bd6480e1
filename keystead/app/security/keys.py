# keystead/app/security/keys.py
"""
Device public-key handling.

Devices identify themselves with a PEM-encoded RSA public key. The server
only ever encrypts to that key (RSA-OAEP with SHA-256); the matching private
key never leaves the device.
"""
import base64
import hashlib

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from keystead.app.core.exceptions import PayloadFormatError

MIN_RSA_KEY_BITS = 2048

OAEP_PADDING = padding.OAEP(
    mgf=padding.MGF1(algorithm=hashes.SHA256()),
    algorithm=hashes.SHA256(),
    label=None,
)


def public_key_bytes(pem: str) -> bytes:
    """
    UTF-8 bytes of a PEM key received as text.

    Raises:
        PayloadFormatError: the text has no UTF-8 form (lone surrogates)
    """
    try:
        return pem.encode("utf-8")
    except UnicodeEncodeError as exc:
        raise PayloadFormatError("Public key is not a valid PEM key") from exc


def compute_fingerprint(public_key: bytes) -> str:
    """Hex SHA-256 of the raw public key bytes."""
    if not public_key:
        raise PayloadFormatError("Public key cannot be empty")
    return hashlib.sha256(public_key).hexdigest()


def load_public_key(public_key: bytes) -> rsa.RSAPublicKey:
    """
    Parse a PEM RSA public key.

    Raises:
        PayloadFormatError: not PEM, not RSA, or shorter than 2048 bits
    """
    try:
        key = serialization.load_pem_public_key(public_key)
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise PayloadFormatError("Public key is not a valid PEM key") from exc

    if not isinstance(key, rsa.RSAPublicKey):
        raise PayloadFormatError("Public key must be an RSA key")
    if key.key_size < MIN_RSA_KEY_BITS:
        raise PayloadFormatError(f"RSA keys must be at least {MIN_RSA_KEY_BITS} bits")
    return key


def encrypt_with_public_key(plaintext: bytes, public_key: bytes) -> str:
    """
    Encrypt `plaintext` so only the holder of the private key can read it.

    Returns:
        Base64-encoded ciphertext
    """
    key = load_public_key(public_key)
    ciphertext = key.encrypt(plaintext, OAEP_PADDING)
    return base64.b64encode(ciphertext).decode("utf-8")
