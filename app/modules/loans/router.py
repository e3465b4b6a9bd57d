from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from app.core.database import get_db
from app.core.dependencies import get_current_active_user, require_borrower, require_kyc_approved
from app.core.responses import ok, paginate
from app.modules.users.models import User
from app.modules.loans.models import LoanStatus
from app.modules.loans.schemas import LoanRequestCreate, LoanQuoteRequest, LoanRepayment, LoanResponse
from app.modules.loans.services import LoanService
from app.modules.nfts.schemas import NFTLoanResponse
from app.modules.notifications.services import NotificationHub, get_notification_hub

router = APIRouter(prefix="/api/loans", tags=["Loans"])


@router.post("/request", status_code=status.HTTP_201_CREATED, dependencies=[Depends(require_borrower)])
async def request_loan(
    loan_in: LoanRequestCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_kyc_approved),
    hub: NotificationHub = Depends(get_notification_hub)
):
    """
    Submit a loan request.

    - Requires approved KYC
    - Amount 1,000 - 1,000,000; rate 0.1 - 50%; term 1 - 360 months
    - Administrators are notified in real time
    """
    service = LoanService(db)
    loan = await service.submit_request(current_user, loan_in, hub)
    return ok({"loan": LoanResponse.model_validate(loan)}, "Loan request submitted successfully")


@router.post("/quote")
async def quote_loan(
    quote_in: LoanQuoteRequest,
    current_user: User = Depends(get_current_active_user)
):
    """Monthly payment, total interest and schedule preview"""
    return ok(LoanService.loan_quote(quote_in))


@router.get("/my-loans")
async def read_my_loans(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[LoanStatus] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    service = LoanService(db)
    loans, total = await service.get_user_loans(current_user, page, limit, status)
    return ok({
        "loans": [LoanResponse.model_validate(loan) for loan in loans],
        "pagination": paginate(page, limit, total),
    })


@router.get("/{loan_id}")
async def read_loan(
    loan_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    service = LoanService(db)
    loan, nft = await service.get_loan_detail(loan_id, current_user)
    responses = await service.attach_borrowers([loan])
    return ok({
        "loan": responses[0],
        "nft": NFTLoanResponse.model_validate(nft) if nft else None,
    })


@router.put("/{loan_id}/repayment")
async def repay_loan(
    loan_id: int,
    repayment: LoanRepayment,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_borrower),
    hub: NotificationHub = Depends(get_notification_hub)
):
    """Record a repayment against an active loan"""
    service = LoanService(db)
    loan = await service.record_repayment(current_user, loan_id, repayment, hub)
    return ok({"loan": LoanResponse.model_validate(loan)}, "Repayment recorded successfully")
