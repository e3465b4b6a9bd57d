"""
Admin NFT endpoints.
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from app.core.database import get_db
from app.core.dependencies import require_admin
from app.core.responses import ok, paginate
from app.modules.users.models import User
from app.modules.loans.schemas import RetryMintRequest
from app.modules.loans.services import LoanService
from app.modules.nfts.models import MarketplaceStatus
from app.modules.nfts.router import marketplace_item
from app.modules.nfts.schemas import NFTLoanResponse
from app.modules.nfts.services import MarketplaceService
from app.modules.notifications.services import NotificationHub, get_notification_hub
from app.integrations.verbwire import VerbwireClient, get_minting_client

router = APIRouter(prefix="/nfts", tags=["admin-nfts"])


@router.post("/{loan_id}/retry-mint")
async def retry_mint(
    loan_id: int,
    body: Optional[RetryMintRequest] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
    minting: VerbwireClient = Depends(get_minting_client),
    hub: NotificationHub = Depends(get_notification_hub)
):
    """Mint the token for an approved loan whose first attempt failed"""
    service = LoanService(db)
    loan, nft = await service.retry_mint(
        current_user, loan_id, body.wallet_address if body else None, minting, hub
    )
    return ok({
        "loan": (await service.attach_borrowers([loan]))[0],
        "nft": NFTLoanResponse.model_validate(nft),
    }, "NFT minted successfully")


@router.get("")
async def list_nfts(
    marketplace_status: Optional[MarketplaceStatus] = Query(None, alias="marketplaceStatus"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db)
):
    service = MarketplaceService(db)
    rows, total = await service.list_all(page, limit, marketplace_status)
    return ok({
        "nfts": [marketplace_item(nft, loan) for nft, loan in rows],
        "pagination": paginate(page, limit, total),
    })
