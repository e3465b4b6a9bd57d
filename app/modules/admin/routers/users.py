"""
Admin user and KYC management endpoints.
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from app.core.database import get_db
from app.core.dependencies import require_admin
from app.core.responses import ok, paginate
from app.modules.users.models import User, UserRole, KYCStatus
from app.modules.users.schemas import UserResponse, KYCReviewRequest
from app.modules.users.services import UserService
from app.modules.notifications.services import NotificationHub, get_notification_hub

router = APIRouter(prefix="/users", tags=["admin-users"])


@router.get("")
async def list_users(
    kyc_status: Optional[KYCStatus] = Query(None, alias="kycStatus"),
    is_active: Optional[bool] = Query(None, alias="isActive"),
    role: Optional[UserRole] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db)
):
    """List accounts, filterable by KYC status and activity"""
    users, total = await UserService.list_users(db, page, limit, kyc_status, is_active, role)
    return ok({
        "users": [UserResponse.model_validate(user) for user in users],
        "pagination": paginate(page, limit, total),
    })


@router.put("/{user_id}/kyc")
async def review_kyc(
    user_id: int,
    review: KYCReviewRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
    hub: NotificationHub = Depends(get_notification_hub)
):
    """Approve or reject a borrower's KYC; the borrower is notified in real time"""
    user = await UserService.review_kyc(db, current_user, user_id, review.action, review.notes, hub)
    return ok({"user": UserResponse.model_validate(user)}, f"KYC {user.kyc_status.value} successfully")
