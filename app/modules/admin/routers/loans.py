"""
Admin loan management endpoints.
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from app.core.database import get_db
from app.core.dependencies import require_admin
from app.core.responses import ok, paginate
from app.modules.users.models import User
from app.modules.loans.models import LoanStatus
from app.modules.loans.schemas import LoanApproveRequest, LoanRejectRequest, LoanDefaultRequest
from app.modules.loans.services import LoanService
from app.modules.nfts.schemas import NFTLoanResponse
from app.modules.notifications.services import NotificationHub, get_notification_hub
from app.integrations.verbwire import VerbwireClient, get_minting_client

router = APIRouter(prefix="/loans", tags=["admin-loans"])


@router.get("")
async def list_loans(
    status: Optional[LoanStatus] = None,
    user_id: Optional[int] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db)
):
    """List all loans with borrower details"""
    service = LoanService(db)
    loans, total = await service.list_loans(page, limit, status, user_id)
    return ok({
        "loans": await service.attach_borrowers(loans),
        "pagination": paginate(page, limit, total),
    })


@router.put("/{loan_id}/approve")
async def approve_loan(
    loan_id: int,
    approval: LoanApproveRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
    minting: VerbwireClient = Depends(get_minting_client),
    hub: NotificationHub = Depends(get_notification_hub)
):
    """
    Approve a pending loan and mint its token.

    A mint failure keeps the approval and returns a `warning`; use
    `POST /api/admin/nfts/{loan_id}/retry-mint` to try again.
    """
    service = LoanService(db)
    loan, nft, warning = await service.approve(current_user, loan_id, approval, minting, hub)
    loan_response = (await service.attach_borrowers([loan]))[0]
    data = {"loan": loan_response, "nft": NFTLoanResponse.model_validate(nft) if nft else None}

    if warning:
        return ok(data, "Loan approved but NFT minting failed", warning=warning)
    return ok(data, "Loan approved and NFT minted successfully")


@router.put("/{loan_id}/reject")
async def reject_loan(
    loan_id: int,
    rejection: LoanRejectRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
    hub: NotificationHub = Depends(get_notification_hub)
):
    service = LoanService(db)
    loan = await service.reject(current_user, loan_id, rejection, hub)
    return ok({"loan": (await service.attach_borrowers([loan]))[0]}, "Loan rejected successfully")


@router.put("/{loan_id}/default")
async def default_loan(
    loan_id: int,
    body: LoanDefaultRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
    hub: NotificationHub = Depends(get_notification_hub)
):
    """Mark an active loan as defaulted"""
    service = LoanService(db)
    loan = await service.mark_defaulted(current_user, loan_id, body.admin_notes, hub)
    return ok({"loan": (await service.attach_borrowers([loan]))[0]}, "Loan marked as defaulted")
