# keystead/app/api/v1/endpoints/users.py
from fastapi import APIRouter, Depends, status

from keystead.app.api import deps
from keystead.app.api.middleware import AuthContext
from keystead.app.schemas.user import (
    DeletedUserResponse,
    EmailVerificationConfirm,
    MessageResponse,
    UserCreate,
    UserResponse,
)
from keystead.app.services.credentials import CredentialVerifier
from keystead.app.services.email import EmailVerificationService
from keystead.app.services.users import UserService

router = APIRouter()


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register(
        user_in: UserCreate,
        verifier: CredentialVerifier = Depends(deps.get_credential_verifier),
):
    return await verifier.register(user_in)


@router.get("/me", response_model=UserResponse)
async def read_current_user(
        auth: AuthContext = Depends(deps.get_auth_context),
        users: UserService = Depends(deps.get_user_service),
):
    return await users.get(auth.user_id)


@router.delete("/me", response_model=DeletedUserResponse)
async def remove_current_user(
        auth: AuthContext = Depends(deps.get_auth_context),
        users: UserService = Depends(deps.get_user_service),
):
    return DeletedUserResponse(id=await users.remove(auth.user_id))


@router.post(
    "/me/email-verification",
    response_model=MessageResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def request_email_verification(
        auth: AuthContext = Depends(deps.get_auth_context),
        users: UserService = Depends(deps.get_user_service),
        verification: EmailVerificationService = Depends(deps.get_email_verification_service),
):
    user = await users.get(auth.user_id)
    if user.email_verified:
        return MessageResponse(message="Email already verified")

    await verification.send_verification(user)
    return MessageResponse(message="Verification email sent")


@router.post("/email-verification", response_model=UserResponse)
async def confirm_email_verification(
        body: EmailVerificationConfirm,
        verification: EmailVerificationService = Depends(deps.get_email_verification_service),
):
    return await verification.confirm(body.token)
