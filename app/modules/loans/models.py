from sqlalchemy import Column, Integer, String, Numeric, ForeignKey, DateTime, Text, Enum as SQLEnum, event
from sqlalchemy.orm import relationship
from datetime import datetime
from decimal import Decimal
from app.core.database import Base
import enum


class LoanPurpose(str, enum.Enum):
    """Loan purpose categories"""
    PERSONAL = "personal"
    BUSINESS = "business"
    EDUCATION = "education"
    HOME_IMPROVEMENT = "home_improvement"
    DEBT_CONSOLIDATION = "debt_consolidation"
    MEDICAL = "medical"
    INVESTMENT = "investment"
    OTHER = "other"


class LoanStatus(str, enum.Enum):
    """Loan lifecycle status"""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    ACTIVE = "active"
    COMPLETED = "completed"
    DEFAULTED = "defaulted"


class InstallmentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"


class CollateralType(str, enum.Enum):
    NFT = "nft"
    CRYPTO = "crypto"
    REAL_ESTATE = "real_estate"
    VEHICLE = "vehicle"
    OTHER = "other"


class Loan(Base):
    __tablename__ = "loans"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # Terms
    amount = Column(Numeric(14, 2), nullable=False)
    purpose = Column(SQLEnum(LoanPurpose), nullable=False)
    interest_rate = Column(Numeric(5, 2), nullable=False)
    term_months = Column(Integer, nullable=False)

    # Lifecycle
    status = Column(SQLEnum(LoanStatus), default=LoanStatus.PENDING, nullable=False, index=True)
    request_date = Column(DateTime, default=datetime.utcnow, nullable=False)
    approval_date = Column(DateTime, nullable=True)
    rejection_date = Column(DateTime, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    admin_notes = Column(Text, nullable=True)
    approved_by = Column(Integer, ForeignKey("users.id"), nullable=True)

    # Collateral
    collateral_type = Column(SQLEnum(CollateralType), nullable=True)
    collateral_value = Column(Numeric(14, 2), nullable=True)
    collateral_description = Column(Text, nullable=True)

    # Tokenization
    nft_token_id = Column(String(100), nullable=True)
    nft_contract_address = Column(String(42), nullable=True)
    nft_transaction_hash = Column(String(66), nullable=True)

    # Repayment
    total_repaid = Column(Numeric(14, 2), default=Decimal("0.00"), nullable=False)
    remaining_balance = Column(Numeric(14, 2), nullable=False)

    # Optimistic concurrency guard for status transitions
    version = Column(Integer, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    installments = relationship(
        "LoanInstallment",
        back_populates="loan",
        cascade="all, delete-orphan",
        order_by="LoanInstallment.installment_number",
        lazy="selectin"
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def collateral(self):
        if self.collateral_type is None:
            return None
        return {
            "type": self.collateral_type,
            "value": self.collateral_value,
            "description": self.collateral_description,
        }

    def __repr__(self):
        return f"<Loan(id={self.id}, amount={self.amount}, status={self.status})>"


class LoanInstallment(Base):
    """One row of a loan's repayment schedule"""
    __tablename__ = "loan_installments"

    id = Column(Integer, primary_key=True, index=True)
    loan_id = Column(Integer, ForeignKey("loans.id", ondelete="CASCADE"), nullable=False, index=True)
    installment_number = Column(Integer, nullable=False)
    due_date = Column(DateTime, nullable=False)
    amount = Column(Numeric(14, 2), nullable=False)
    principal = Column(Numeric(14, 2), nullable=False)
    interest = Column(Numeric(14, 2), nullable=False)
    status = Column(SQLEnum(InstallmentStatus), default=InstallmentStatus.PENDING, nullable=False)
    paid_amount = Column(Numeric(14, 2), default=Decimal("0.00"), nullable=False)
    paid_date = Column(DateTime, nullable=True)

    loan = relationship("Loan", back_populates="installments")

    def __repr__(self):
        return f"<LoanInstallment(loan_id={self.loan_id}, number={self.installment_number}, status={self.status})>"


@event.listens_for(Loan, "before_insert")
@event.listens_for(Loan, "before_update")
def _recompute_remaining_balance(mapper, connection, target):
    total_repaid = Decimal(target.total_repaid or 0)
    target.total_repaid = total_repaid
    target.remaining_balance = Decimal(target.amount) - total_repaid
