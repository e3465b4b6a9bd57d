from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional
from datetime import datetime
from enum import Enum

from app.core.security import is_wallet_address


class UserRoleEnum(str, Enum):
    USER = "user"
    ADMIN = "admin"


class KYCStatusEnum(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


def _check_wallet(v: Optional[str]) -> Optional[str]:
    if v is None or v == "":
        return None
    if not is_wallet_address(v):
        raise ValueError("Invalid Ethereum wallet address format")
    return v.lower()


class AddressSchema(BaseModel):
    street: Optional[str] = Field(None, max_length=255)
    city: Optional[str] = Field(None, max_length=100)
    state: Optional[str] = Field(None, max_length=100)
    zip_code: Optional[str] = Field(None, max_length=20)
    country: Optional[str] = Field(None, max_length=100)


# ============ Registration & Login ============

class UserRegistrationRequest(BaseModel):
    """Email/password registration"""
    email: EmailStr
    password: str = Field(..., min_length=6)
    first_name: str = Field(..., min_length=2, max_length=50)
    last_name: str = Field(..., min_length=2, max_length=50)
    phone: Optional[str] = Field(None, max_length=20)
    address: Optional[AddressSchema] = None
    wallet_address: Optional[str] = None

    @field_validator("first_name", "last_name")
    @classmethod
    def strip_names(cls, v):
        v = v.strip()
        if len(v) < 2:
            raise ValueError("Name must be between 2 and 50 characters")
        return v

    @field_validator("wallet_address")
    @classmethod
    def validate_wallet(cls, v):
        return _check_wallet(v)


class UserLoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6)


class WalletConnectRequest(BaseModel):
    wallet_address: str

    @field_validator("wallet_address")
    @classmethod
    def validate_wallet(cls, v):
        return _check_wallet(v)


class WalletVerifyRequest(BaseModel):
    wallet_address: str
    signature: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)
    nonce: str = Field(..., min_length=1)

    @field_validator("wallet_address")
    @classmethod
    def validate_wallet(cls, v):
        return _check_wallet(v)


class WalletChallengeResponse(BaseModel):
    nonce: str
    message: str
    expires_in: int


# ============ Profile ============

class UserResponse(BaseModel):
    """Public user profile"""
    id: int
    email: str
    first_name: str
    last_name: str
    phone: Optional[str] = None
    role: UserRoleEnum
    kyc_status: KYCStatusEnum
    kyc_rejection_reason: Optional[str] = None
    is_active: bool
    wallet_address: Optional[str] = None
    is_wallet_user: bool
    profile_picture: Optional[str] = None
    address: AddressSchema
    id_document: Optional[str] = None
    proof_of_address: Optional[str] = None
    proof_of_income: Optional[str] = None
    kyc_documents_uploaded_at: Optional[datetime] = None
    last_login_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class UserSummary(BaseModel):
    """Borrower / approver fields attached to loan listings"""
    id: int
    first_name: str
    last_name: str
    email: str
    wallet_address: Optional[str] = None
    kyc_status: KYCStatusEnum

    class Config:
        from_attributes = True


class UserProfileUpdate(BaseModel):
    first_name: Optional[str] = Field(None, min_length=2, max_length=50)
    last_name: Optional[str] = Field(None, min_length=2, max_length=50)
    phone: Optional[str] = Field(None, max_length=20)
    address: Optional[AddressSchema] = None
    wallet_address: Optional[str] = None

    @field_validator("wallet_address")
    @classmethod
    def validate_wallet(cls, v):
        return _check_wallet(v)


class AuthResponse(BaseModel):
    user: UserResponse
    token: str
    token_type: str = "bearer"
    expires_in: int


# ============ KYC ============

class KYCStatusResponse(BaseModel):
    kyc_status: KYCStatusEnum
    kyc_rejection_reason: Optional[str] = None
    has_id_document: bool
    has_proof_of_address: bool
    has_proof_of_income: bool
    documents_uploaded_at: Optional[datetime] = None
    can_request_loan: bool


class KYCReviewRequest(BaseModel):
    """Admin KYC decision"""
    action: str = Field(..., pattern="^(approve|reject)$")
    notes: Optional[str] = Field(None, max_length=1000)
