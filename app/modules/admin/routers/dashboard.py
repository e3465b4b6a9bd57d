"""
Admin dashboard endpoints.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.responses import ok
from app.modules.admin.services import AdminService

router = APIRouter(prefix="/dashboard", tags=["admin-dashboard"])


@router.get("")
async def get_dashboard_stats(db: AsyncSession = Depends(get_db)):
    """User, loan and NFT totals"""
    service = AdminService(db)
    return ok(await service.get_dashboard_stats())
