"""
Admin module sub-routers organized by domain.
"""
from fastapi import APIRouter, Depends

from app.core.dependencies import require_admin
from app.modules.admin.routers.dashboard import router as dashboard_router
from app.modules.admin.routers.loans import router as loans_router
from app.modules.admin.routers.users import router as users_router
from app.modules.admin.routers.nfts import router as nfts_router

# Main admin router; every route requires an administrator
router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin)])

router.include_router(dashboard_router)
router.include_router(loans_router)
router.include_router(users_router)
router.include_router(nfts_router)
