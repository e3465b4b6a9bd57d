from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text, Enum as SQLEnum
from datetime import datetime
from app.core.database import Base
import enum


class UserRole(str, enum.Enum):
    """User role enumeration"""
    USER = "user"
    ADMIN = "admin"


class KYCStatus(str, enum.Enum):
    """KYC verification status"""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class User(Base):
    """Borrower or administrator account"""
    __tablename__ = "users"

    # Primary Key
    id = Column(Integer, primary_key=True, index=True)

    # Authentication
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=True)  # Wallet-only users have none
    role = Column(SQLEnum(UserRole), default=UserRole.USER, nullable=False)

    # Personal Information
    first_name = Column(String(50), nullable=False)
    last_name = Column(String(50), nullable=False)
    phone = Column(String(20), nullable=True)
    profile_picture = Column(String(500), nullable=True)

    # Address Information
    street = Column(String(255), nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(100), nullable=True)
    zip_code = Column(String(20), nullable=True)
    country = Column(String(100), nullable=True)

    # Wallet
    wallet_address = Column(String(42), unique=True, index=True, nullable=True)
    is_wallet_user = Column(Boolean, default=False, nullable=False)

    # KYC Status
    kyc_status = Column(SQLEnum(KYCStatus), default=KYCStatus.PENDING, nullable=False)
    kyc_rejection_reason = Column(Text, nullable=True)
    kyc_reviewed_at = Column(DateTime, nullable=True)
    kyc_reviewer_id = Column(Integer, nullable=True)

    # KYC Documents (IPFS gateway URLs or local storage URLs)
    id_document = Column(String(500), nullable=True)
    proof_of_address = Column(String(500), nullable=True)
    proof_of_income = Column(String(500), nullable=True)
    kyc_documents_uploaded_at = Column(DateTime, nullable=True)

    # Account Status
    is_active = Column(Boolean, default=True, nullable=False)
    last_login_at = Column(DateTime, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def address(self) -> dict:
        return {
            "street": self.street,
            "city": self.city,
            "state": self.state,
            "zip_code": self.zip_code,
            "country": self.country,
        }

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
