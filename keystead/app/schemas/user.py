# keystead/app/schemas/user.py
import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base schema: snake_case in Python, camelCase on the wire."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class KdfParams(CamelModel):
    """
    Client-side key derivation parameters.

    iterations and key_length are also used for the server-side PBKDF2.
    """
    algorithm: str = Field(..., min_length=1, max_length=32)
    iterations: int = Field(..., ge=1, le=1_000_000)
    key_length: int = Field(..., ge=16, le=64)
    memory_kb: int = Field(..., ge=0)
    parallelism: int = Field(..., ge=1, le=64)


class UserCreate(CamelModel):
    username: str = Field(..., min_length=3, max_length=64)
    email: EmailStr
    # Derived client-side, never the plaintext password
    password_hash: str = Field(..., min_length=16, max_length=1024)
    kdf_params: KdfParams


# Never carries the server hash or salt
class UserResponse(CamelModel):
    id: uuid.UUID
    username: str
    email: str
    kdf_params: KdfParams
    email_verified: bool
    created_at: Optional[datetime] = None


class DeletedUserResponse(CamelModel):
    id: uuid.UUID


class EmailVerificationConfirm(CamelModel):
    token: str = Field(..., min_length=1)


class MessageResponse(CamelModel):
    message: str
