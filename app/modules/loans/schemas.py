from pydantic import BaseModel, Field, computed_field, field_validator
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from app.core.responses import Money
from app.core.security import is_wallet_address
from app.modules.loans.models import LoanPurpose, LoanStatus, InstallmentStatus, CollateralType
from app.modules.loans import amortization
from app.modules.users.schemas import UserSummary


class CollateralSchema(BaseModel):
    type: CollateralType
    value: Decimal = Field(..., ge=0, max_digits=14, decimal_places=2)
    description: Optional[str] = Field(None, max_length=1000)


class LoanRequestCreate(BaseModel):
    """Borrower loan request"""
    amount: Decimal = Field(..., ge=1000, le=1_000_000, decimal_places=2)
    purpose: LoanPurpose
    interest_rate: Decimal = Field(..., ge=Decimal("0.1"), le=50, decimal_places=2)
    term_months: int = Field(..., ge=1, le=360)
    collateral: Optional[CollateralSchema] = None


class LoanQuoteRequest(BaseModel):
    amount: Decimal = Field(..., ge=1000, le=1_000_000, decimal_places=2)
    interest_rate: Decimal = Field(..., ge=Decimal("0.1"), le=50, decimal_places=2)
    term_months: int = Field(..., ge=1, le=360)


class LoanRepayment(BaseModel):
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    installment_number: Optional[int] = Field(None, ge=1)


class LoanApproveRequest(BaseModel):
    admin_notes: Optional[str] = Field(None, max_length=2000)
    wallet_address: Optional[str] = None

    @field_validator("wallet_address")
    @classmethod
    def validate_wallet(cls, v):
        if v is None or v == "":
            return None
        if not is_wallet_address(v):
            raise ValueError("Invalid Ethereum wallet address format")
        return v.lower()


class LoanRejectRequest(BaseModel):
    rejection_reason: str = Field(..., min_length=10, max_length=1000)
    admin_notes: Optional[str] = Field(None, max_length=2000)


class LoanDefaultRequest(BaseModel):
    admin_notes: Optional[str] = Field(None, max_length=2000)


class RetryMintRequest(BaseModel):
    wallet_address: Optional[str] = None

    @field_validator("wallet_address")
    @classmethod
    def validate_wallet(cls, v):
        if v is None or v == "":
            return None
        if not is_wallet_address(v):
            raise ValueError("Invalid Ethereum wallet address format")
        return v.lower()


class InstallmentResponse(BaseModel):
    installment_number: int
    due_date: datetime
    amount: Money
    principal: Money
    interest: Money
    status: InstallmentStatus
    paid_amount: Money
    paid_date: Optional[datetime] = None

    class Config:
        from_attributes = True


class ScheduleEntryResponse(BaseModel):
    installment_number: int
    due_date: datetime
    amount: Money
    principal: Money
    interest: Money
    remaining_balance: Money

    class Config:
        from_attributes = True


class LoanQuoteResponse(BaseModel):
    monthly_payment: Money
    total_interest: Money
    total_payable: Money
    schedule: List[ScheduleEntryResponse]


class LoanResponse(BaseModel):
    id: int
    user_id: int
    amount: Money
    purpose: LoanPurpose
    interest_rate: Money
    term_months: int
    status: LoanStatus
    request_date: datetime
    approval_date: Optional[datetime] = None
    rejection_date: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    admin_notes: Optional[str] = None
    approved_by: Optional[int] = None
    collateral: Optional[CollateralSchema] = None
    nft_token_id: Optional[str] = None
    nft_contract_address: Optional[str] = None
    nft_transaction_hash: Optional[str] = None
    total_repaid: Money
    remaining_balance: Money
    installments: List[InstallmentResponse] = []
    created_at: datetime
    updated_at: datetime

    # Filled by the explicit read-side join in LoanService.attach_borrowers
    borrower: Optional[UserSummary] = None
    approver: Optional[UserSummary] = None

    class Config:
        from_attributes = True

    @computed_field
    @property
    def monthly_payment(self) -> float:
        return float(amortization.calculate_monthly_payment(self.amount, self.interest_rate, self.term_months))

    @computed_field
    @property
    def total_interest(self) -> float:
        return float(amortization.total_interest(self.amount, self.interest_rate, self.term_months))
