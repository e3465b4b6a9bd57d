# Loans module
from app.modules.loans.models import (
    Loan, LoanInstallment,
    LoanPurpose, LoanStatus, InstallmentStatus, CollateralType
)

__all__ = [
    "Loan", "LoanInstallment",
    "LoanPurpose", "LoanStatus", "InstallmentStatus", "CollateralType"
]
