from fastapi import APIRouter, Depends, Header, status, UploadFile, File
from sqlalchemy.ext.asyncio import AsyncSession
from redis import asyncio as aioredis
from typing import Optional

from app.core.database import get_db, get_redis
from app.core.dependencies import (
    oauth2_scheme, get_current_active_user, require_borrower
)
from app.core.responses import ok
from app.modules.users.models import User
from app.modules.users import schemas
from app.modules.users.services import UserService
from app.modules.notifications.services import NotificationHub, get_notification_hub
from app.integrations.pinata import PinataClient, get_pinning_client

auth_router = APIRouter(prefix="/api/auth", tags=["Auth"])
router = APIRouter(prefix="/api/users", tags=["Users"])


def _auth_payload(user: User) -> dict:
    return {"user": schemas.UserResponse.model_validate(user), **UserService.create_token(user)}


# ============ Auth ============

@auth_router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    user_data: schemas.UserRegistrationRequest,
    db: AsyncSession = Depends(get_db)
):
    """
    Register a borrower account.

    - Email must be unique
    - KYC starts as pending
    - Returns the profile and an access token
    """
    user = await UserService.register_user(db, user_data)
    return ok(_auth_payload(user), "User registered successfully")


@auth_router.post("/admin/register", status_code=status.HTTP_201_CREATED)
async def register_admin(
    user_data: schemas.UserRegistrationRequest,
    db: AsyncSession = Depends(get_db),
    x_admin_secret: Optional[str] = Header(None)
):
    """Register an administrator (requires the X-Admin-Secret header)"""
    user = await UserService.register_admin(db, user_data, x_admin_secret)
    return ok(_auth_payload(user), "Admin registered successfully")


@auth_router.post("/login")
async def login(
    login_data: schemas.UserLoginRequest,
    db: AsyncSession = Depends(get_db)
):
    """Login with email and password"""
    user = await UserService.authenticate_user(db, login_data.email, login_data.password)
    return ok(_auth_payload(user), "Login successful")


@auth_router.get("/me")
async def me(current_user: User = Depends(get_current_active_user)):
    return ok({"user": schemas.UserResponse.model_validate(current_user)})


@auth_router.put("/change-password")
async def change_password(
    data: schemas.ChangePasswordRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    await UserService.change_password(db, current_user, data.current_password, data.new_password)
    return ok(message="Password changed successfully")


@auth_router.post("/logout")
async def logout(
    token: str = Depends(oauth2_scheme),
    redis: aioredis.Redis = Depends(get_redis),
    current_user: User = Depends(get_current_active_user)
):
    """Logout current user by invalidating token"""
    await UserService.logout_user(redis, token)
    return ok(message="Successfully logged out")


@auth_router.post("/wallet/connect")
async def wallet_connect(
    data: schemas.WalletConnectRequest,
    redis: aioredis.Redis = Depends(get_redis)
):
    """
    Start a wallet login.

    Returns a one-time nonce and the message the wallet must sign.
    """
    challenge = await UserService.create_wallet_challenge(redis, data.wallet_address)
    return ok(schemas.WalletChallengeResponse(**challenge), "Sign the message with your wallet")


@auth_router.post("/wallet/verify")
async def wallet_verify(
    data: schemas.WalletVerifyRequest,
    db: AsyncSession = Depends(get_db),
    redis: aioredis.Redis = Depends(get_redis)
):
    """Verify the signed challenge; creates the account on first login"""
    user, created = await UserService.verify_wallet(db, redis, data)
    message = "Wallet account created" if created else "Wallet login successful"
    return ok({**_auth_payload(user), "is_new_user": created}, message)


# ============ Users ============

@router.get("/profile")
async def get_profile(current_user: User = Depends(get_current_active_user)):
    return ok({"user": schemas.UserResponse.model_validate(current_user)})


@router.put("/profile")
async def update_profile(
    profile_data: schemas.UserProfileUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    user = await UserService.update_profile(db, current_user, profile_data)
    return ok({"user": schemas.UserResponse.model_validate(user)}, "Profile updated successfully")


@router.post("/profile-picture")
async def upload_profile_picture(
    image: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    """Upload a profile image (JPG, PNG, GIF, WEBP)"""
    user = await UserService.upload_profile_picture(db, current_user, image)
    return ok({"profile_picture": user.profile_picture}, "Profile picture updated successfully")


@router.post("/kyc-documents")
async def upload_kyc_documents(
    id_document: Optional[UploadFile] = File(None),
    proof_of_address: Optional[UploadFile] = File(None),
    proof_of_income: Optional[UploadFile] = File(None),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_borrower),
    pinning: PinataClient = Depends(get_pinning_client),
    hub: NotificationHub = Depends(get_notification_hub)
):
    """
    Submit KYC documents for review.

    - At least one of id_document, proof_of_address, proof_of_income
    - Accepted formats: JPG, PNG, PDF
    - A rejected KYC goes back to pending
    """
    user = await UserService.upload_kyc_documents(
        db,
        current_user,
        {
            "id_document": id_document,
            "proof_of_address": proof_of_address,
            "proof_of_income": proof_of_income,
        },
        pinning,
        hub,
    )
    return ok(UserService.get_kyc_status(user), "KYC documents uploaded successfully")


@router.get("/kyc-status")
async def get_kyc_status(current_user: User = Depends(get_current_active_user)):
    return ok(UserService.get_kyc_status(current_user))


@router.post("/deactivate")
async def deactivate_account(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    """Deactivate the account (refused while loans are active or approved)"""
    await UserService.deactivate_account(db, current_user)
    return ok(message="Account deactivated successfully")
