# keystead/app/security/hashing.py
"""
Server-side password hashing.

The client never sends a plaintext password: it derives a hash locally
(Argon2id or similar, parameters stored in User.kdf_params) and sends that.
The server hashes the client value once more with PBKDF2-HMAC-SHA256, a
per-user salt and a server-wide pepper, so a database dump alone is not
enough to replay a login.
"""
import base64
import hashlib
import secrets

SALT_BYTES = 32


def generate_salt(size: int = SALT_BYTES) -> str:
    """
    Generate a cryptographically secure random salt.

    Returns:
        Base64-encoded salt of `size` bytes
    """
    return base64.b64encode(secrets.token_bytes(size)).decode("utf-8")


def hash_password(
    pepper: str,
    client_hash: str,
    salt: str,
    iterations: int,
    key_length: int,
) -> str:
    """
    Derive the server-side hash of a client password hash.

    Args:
        pepper: Server secret appended to the client hash before derivation
        client_hash: Hash the client derived from the plaintext password
        salt: Base64-encoded per-user salt
        iterations: PBKDF2 iteration count stored for the user
        key_length: Output length in bytes stored for the user

    Returns:
        Base64-encoded derived key
    """
    derived = hashlib.pbkdf2_hmac(
        "sha256",
        (client_hash + pepper).encode("utf-8"),
        base64.b64decode(salt),
        iterations,
        dklen=key_length,
    )
    return base64.b64encode(derived).decode("utf-8")


def constant_time_compare(a: str, b: str) -> bool:
    """Compare two strings in constant time to prevent timing attacks."""
    return secrets.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


def verify_password(
    pepper: str,
    client_hash: str,
    salt: str,
    iterations: int,
    key_length: int,
    stored_hash: str,
) -> bool:
    computed = hash_password(pepper, client_hash, salt, iterations, key_length)
    return constant_time_compare(computed, stored_hash)
