from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from fastapi import UploadFile
from datetime import datetime
from typing import Optional, Dict, Tuple, List
from pathlib import Path
from redis import asyncio as aioredis
from eth_account import Account
from eth_account.messages import encode_defunct
import logging
import secrets

from app.core.security import (
    get_password_hash,
    verify_password,
    create_access_token,
    decode_token,
    token_ttl_seconds,
    generate_nonce,
    wallet_login_message,
)
from app.core.config import settings
from app.core.exceptions import (
    ValidationError, AuthenticationError, AuthorizationError, NotFoundError, ConflictError
)
from app.modules.users.models import User, UserRole, KYCStatus
from app.modules.users import schemas
from app.modules.loans.models import Loan, LoanStatus
from app.modules.notifications.services import NotificationHub
from app.integrations.pinata import PinataClient

logger = logging.getLogger(__name__)

KYC_DOCUMENT_FIELDS = ("id_document", "proof_of_address", "proof_of_income")
KYC_ALLOWED_TYPES = {"image/jpeg", "image/jpg", "image/png", "application/pdf"}
PROFILE_PICTURE_TYPES = {"image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp"}


class UserService:
    """Service layer for accounts, authentication and KYC"""

    # ============ Registration & Login ============

    @staticmethod
    async def _ensure_unique(db: AsyncSession, email: str, wallet_address: Optional[str] = None) -> None:
        result = await db.execute(select(User.id).where(User.email == email))
        if result.scalar_one_or_none() is not None:
            raise ConflictError("User already exists with this email")

        if wallet_address:
            result = await db.execute(select(User.id).where(User.wallet_address == wallet_address))
            if result.scalar_one_or_none() is not None:
                raise ConflictError("Wallet address already connected to another account")

    @staticmethod
    async def register_user(
        db: AsyncSession,
        user_data: schemas.UserRegistrationRequest,
        role: UserRole = UserRole.USER
    ) -> User:
        """Create an account; admins start with KYC approved"""
        email = user_data.email.lower()
        await UserService._ensure_unique(db, email, user_data.wallet_address)

        address = user_data.address or schemas.AddressSchema()
        user = User(
            email=email,
            hashed_password=get_password_hash(user_data.password),
            first_name=user_data.first_name,
            last_name=user_data.last_name,
            phone=user_data.phone,
            role=role,
            kyc_status=KYCStatus.APPROVED if role == UserRole.ADMIN else KYCStatus.PENDING,
            wallet_address=user_data.wallet_address,
            street=address.street,
            city=address.city,
            state=address.state,
            zip_code=address.zip_code,
            country=address.country,
            is_active=True,
            last_login_at=datetime.utcnow(),
        )
        db.add(user)
        await db.commit()

        logger.info(f"Registered {role.value} {user.id} ({email})")
        return user

    @staticmethod
    async def register_admin(
        db: AsyncSession,
        user_data: schemas.UserRegistrationRequest,
        admin_secret: Optional[str]
    ) -> User:
        if not admin_secret or not secrets.compare_digest(admin_secret, settings.ADMIN_SECRET):
            raise AuthorizationError("Invalid admin secret")
        return await UserService.register_user(db, user_data, role=UserRole.ADMIN)

    @staticmethod
    async def authenticate_user(db: AsyncSession, email: str, password: str) -> User:
        """Authenticate with email and password"""
        result = await db.execute(select(User).where(User.email == email.lower()))
        user = result.scalar_one_or_none()

        if not user or not verify_password(password, user.hashed_password):
            raise AuthenticationError("Invalid email or password")

        if not user.is_active:
            raise AuthenticationError("Account is deactivated. Please contact support.")

        user.last_login_at = datetime.utcnow()
        await db.commit()
        return user

    @staticmethod
    def create_token(user: User) -> Dict[str, object]:
        token = create_access_token(data={"sub": str(user.id), "role": user.role.value})
        return {
            "token": token,
            "token_type": "bearer",
            "expires_in": settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        }

    @staticmethod
    async def logout_user(redis: aioredis.Redis, token: str) -> None:
        """Logout user by blacklisting token until it would have expired"""
        payload = decode_token(token)
        await redis.setex(f"blacklist:{token}", token_ttl_seconds(payload), "1")

    @staticmethod
    async def change_password(db: AsyncSession, user: User, current_password: str, new_password: str) -> None:
        if not user.hashed_password:
            raise ValidationError("Wallet accounts have no password to change")
        if not verify_password(current_password, user.hashed_password):
            raise AuthenticationError("Current password is incorrect")

        user.hashed_password = get_password_hash(new_password)
        await db.commit()
        logger.info(f"Password changed for user {user.id}")

    # ============ Wallet Login ============

    @staticmethod
    def _nonce_key(wallet_address: str) -> str:
        return f"wallet_nonce:{wallet_address}"

    @staticmethod
    async def create_wallet_challenge(redis: aioredis.Redis, wallet_address: str) -> Dict[str, object]:
        """Issue a nonce and the message the wallet owner must sign"""
        nonce = generate_nonce()
        timestamp_ms = int(datetime.utcnow().timestamp() * 1000)
        expires_in = settings.WALLET_NONCE_EXPIRY_MINUTES * 60

        await redis.setex(UserService._nonce_key(wallet_address), expires_in, nonce)
        return {
            "nonce": nonce,
            "message": wallet_login_message(nonce, timestamp_ms),
            "expires_in": expires_in,
        }

    @staticmethod
    def recover_signer(message: str, signature: str) -> str:
        try:
            recovered = Account.recover_message(encode_defunct(text=message), signature=signature)
        except Exception as e:
            logger.warning(f"Signature recovery failed: {e!r}")
            raise AuthenticationError("Invalid signature")
        return recovered.lower()

    @staticmethod
    async def verify_wallet(
        db: AsyncSession,
        redis: aioredis.Redis,
        data: schemas.WalletVerifyRequest
    ) -> Tuple[User, bool]:
        """
        Check a signed challenge and log the wallet owner in.
        Returns the user and whether the account was just created.
        """
        wallet_address = data.wallet_address
        key = UserService._nonce_key(wallet_address)
        stored_nonce = await redis.get(key)

        if not stored_nonce or not secrets.compare_digest(str(stored_nonce), data.nonce):
            raise AuthenticationError("Invalid or expired nonce")
        if data.nonce not in data.message:
            raise AuthenticationError("Signed message does not contain the nonce")

        if UserService.recover_signer(data.message, data.signature) != wallet_address:
            raise AuthenticationError("Signature does not match wallet address")

        # Only the request that removes the nonce may use it
        if not await redis.delete(key):
            raise AuthenticationError("Invalid or expired nonce")

        result = await db.execute(select(User).where(User.wallet_address == wallet_address))
        user = result.scalar_one_or_none()
        created = False

        if user is None:
            user = User(
                email=f"{wallet_address}@wallet.local",
                hashed_password=None,
                first_name="Wallet",
                last_name="User",
                role=UserRole.USER,
                kyc_status=KYCStatus.PENDING,
                wallet_address=wallet_address,
                is_wallet_user=True,
                is_active=True,
            )
            db.add(user)
            created = True
            logger.info(f"Created wallet user for {wallet_address}")
        elif not user.is_active:
            raise AuthenticationError("Account is deactivated. Please contact support.")

        user.last_login_at = datetime.utcnow()
        await db.commit()
        return user, created

    # ============ Profile ============

    @staticmethod
    async def get_user(db: AsyncSession, user_id: int) -> User:
        result = await db.execute(select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()
        if not user:
            raise NotFoundError("User not found")
        return user

    @staticmethod
    async def update_profile(db: AsyncSession, user: User, profile_data: schemas.UserProfileUpdate) -> User:
        update_data = profile_data.model_dump(exclude_unset=True)

        wallet_address = update_data.pop("wallet_address", None)
        if wallet_address and wallet_address != user.wallet_address:
            result = await db.execute(
                select(User.id).where(User.wallet_address == wallet_address, User.id != user.id)
            )
            if result.scalar_one_or_none() is not None:
                raise ConflictError("Wallet address already connected to another account")
            user.wallet_address = wallet_address

        address = update_data.pop("address", None)
        if address:
            for field, value in address.items():
                if value is not None:
                    setattr(user, field, value)

        for field, value in update_data.items():
            if value is not None:
                setattr(user, field, value)

        await db.commit()
        return user

    @staticmethod
    async def _read_upload(file: UploadFile, allowed_types: set) -> bytes:
        if file.content_type not in allowed_types:
            raise ValidationError(
                f"File type {file.content_type} not allowed. Allowed types: {', '.join(sorted(allowed_types))}"
            )
        content = await file.read()
        if not content:
            raise ValidationError(f"{file.filename} is empty")
        if len(content) > settings.MAX_UPLOAD_SIZE_BYTES:
            raise ValidationError(
                f"{file.filename} exceeds the {settings.MAX_UPLOAD_SIZE_BYTES // (1024 * 1024)}MB limit"
            )
        return content

    @staticmethod
    def save_local_file(content: bytes, folder: str, filename: str) -> str:
        """Write to LOCAL_STORAGE_PATH/<folder> and return the served URL path"""
        upload_dir = Path(settings.LOCAL_STORAGE_PATH) / folder
        upload_dir.mkdir(parents=True, exist_ok=True)

        with open(upload_dir / filename, "wb") as f:
            f.write(content)

        return f"/uploads/{folder}/{filename}"

    @staticmethod
    def _stored_name(user_id: int, label: str, original: Optional[str]) -> str:
        suffix = Path(original or "").suffix.lower() or ".bin"
        timestamp = datetime.utcnow().strftime("%Y%m%d_%H%M%S")
        return f"{user_id}_{label}_{timestamp}{suffix}"

    @staticmethod
    async def upload_profile_picture(db: AsyncSession, user: User, file: UploadFile) -> User:
        content = await UserService._read_upload(file, PROFILE_PICTURE_TYPES)
        filename = UserService._stored_name(user.id, "profile", file.filename)
        user.profile_picture = UserService.save_local_file(content, "profile-pictures", filename)
        await db.commit()
        return user

    # ============ KYC ============

    @staticmethod
    async def upload_kyc_documents(
        db: AsyncSession,
        user: User,
        files: Dict[str, Optional[UploadFile]],
        pinning: PinataClient,
        hub: NotificationHub
    ) -> User:
        """Store the provided documents and put the user back into review"""
        provided = {field: f for field, f in files.items() if f is not None and f.filename}
        if not provided:
            raise ValidationError("At least one document is required")

        for field, file in provided.items():
            if field not in KYC_DOCUMENT_FIELDS:
                raise ValidationError(f"Unknown document type: {field}")
            content = await UserService._read_upload(file, KYC_ALLOWED_TYPES)
            filename = UserService._stored_name(user.id, field, file.filename)

            if settings.USE_LOCAL_STORAGE:
                url = UserService.save_local_file(content, "kyc_documents", filename)
            else:
                pinned = await pinning.pin_file(
                    content,
                    filename,
                    file.content_type,
                    metadata={"name": filename, "keyvalues": {"userId": str(user.id), "type": field}},
                )
                url = pinned["url"]
            setattr(user, field, url)

        user.kyc_documents_uploaded_at = datetime.utcnow()
        if user.kyc_status == KYCStatus.REJECTED:
            user.kyc_status = KYCStatus.PENDING
            user.kyc_rejection_reason = None
        await db.commit()

        logger.info(f"User {user.id} uploaded KYC documents: {', '.join(provided)}")
        await hub.admin_notification(
            "kyc_submission",
            f"{user.full_name} submitted KYC documents",
            {"userId": user.id, "documents": list(provided)},
        )
        return user

    @staticmethod
    def get_kyc_status(user: User) -> schemas.KYCStatusResponse:
        return schemas.KYCStatusResponse(
            kyc_status=user.kyc_status.value,
            kyc_rejection_reason=user.kyc_rejection_reason,
            has_id_document=bool(user.id_document),
            has_proof_of_address=bool(user.proof_of_address),
            has_proof_of_income=bool(user.proof_of_income),
            documents_uploaded_at=user.kyc_documents_uploaded_at,
            can_request_loan=user.kyc_status == KYCStatus.APPROVED,
        )

    @staticmethod
    async def review_kyc(
        db: AsyncSession,
        reviewer: User,
        user_id: int,
        action: str,
        notes: Optional[str],
        hub: NotificationHub
    ) -> User:
        """Admin approves or rejects a borrower's KYC"""
        user = await UserService.get_user(db, user_id)
        if user.role != UserRole.USER:
            raise ValidationError("KYC review applies to borrower accounts only")

        if action == "approve":
            user.kyc_status = KYCStatus.APPROVED
            user.kyc_rejection_reason = None
        elif action == "reject":
            if not notes:
                raise ValidationError("A reason is required to reject KYC")
            user.kyc_status = KYCStatus.REJECTED
            user.kyc_rejection_reason = notes
        else:
            raise ValidationError("Action must be approve or reject")

        user.kyc_reviewed_at = datetime.utcnow()
        user.kyc_reviewer_id = reviewer.id
        await db.commit()

        logger.info(f"KYC for user {user.id} {user.kyc_status.value} by admin {reviewer.id}")
        await hub.kyc_status_changed(user.id, user.kyc_status.value, user.kyc_rejection_reason)
        return user

    # ============ Account ============

    @staticmethod
    async def deactivate_account(db: AsyncSession, user: User) -> None:
        """Soft-deactivate; refused while the user holds open loans"""
        result = await db.execute(
            select(func.count(Loan.id)).where(
                Loan.user_id == user.id,
                Loan.status.in_([LoanStatus.ACTIVE, LoanStatus.APPROVED])
            )
        )
        if result.scalar_one() > 0:
            raise ConflictError("Cannot deactivate account with active or approved loans")

        user.is_active = False
        await db.commit()
        logger.info(f"User {user.id} deactivated their account")

    @staticmethod
    async def list_users(
        db: AsyncSession,
        page: int,
        limit: int,
        kyc_status: Optional[KYCStatus] = None,
        is_active: Optional[bool] = None,
        role: Optional[UserRole] = None
    ) -> Tuple[List[User], int]:
        query = select(User)
        if kyc_status is not None:
            query = query.where(User.kyc_status == kyc_status)
        if is_active is not None:
            query = query.where(User.is_active == is_active)
        if role is not None:
            query = query.where(User.role == role)

        count_result = await db.execute(select(func.count()).select_from(query.subquery()))
        total = count_result.scalar_one()

        result = await db.execute(
            query.order_by(User.created_at.desc(), User.id.desc()).offset((page - 1) * limit).limit(limit)
        )
        return list(result.scalars().all()), total
