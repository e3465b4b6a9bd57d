from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from decimal import Decimal
from typing import Optional

from app.core.database import get_db
from app.core.dependencies import get_current_active_user, require_borrower
from app.core.responses import ok, paginate
from app.modules.users.models import User
from app.modules.loans.models import LoanPurpose
from app.modules.nfts.schemas import (
    ListNFTRequest, TransferNFTRequest, NFTLoanResponse, ListedLoanSummary, MarketplaceItem
)
from app.modules.nfts.services import MarketplaceService
from app.modules.notifications.services import NotificationHub, get_notification_hub
from app.integrations.verbwire import VerbwireClient, get_minting_client

router = APIRouter(prefix="/api/nfts", tags=["NFTs"])


def marketplace_item(nft, loan) -> MarketplaceItem:
    return MarketplaceItem(
        nft=NFTLoanResponse.model_validate(nft),
        loan=ListedLoanSummary.model_validate(loan),
    )


@router.get("/my-portfolio")
async def read_portfolio(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_borrower)
):
    """Tokens minted for the caller's loans"""
    service = MarketplaceService(db)
    rows = await service.get_portfolio(current_user)
    return ok({"nfts": [marketplace_item(nft, loan) for nft, loan in rows], "count": len(rows)})


@router.get("/marketplace/browse")
async def browse_marketplace(
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=50),
    min_amount: Optional[Decimal] = Query(None, ge=0),
    max_amount: Optional[Decimal] = Query(None, ge=0),
    purpose: Optional[LoanPurpose] = None,
    sort_by: str = "listing_date",
    sort_order: str = "desc",
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    """
    Browse listed loan tokens.

    - Filters: amount range, purpose
    - Sort by amount, interest_rate, term_months or listing_date (asc/desc)
    """
    service = MarketplaceService(db)
    rows, total = await service.browse(page, limit, min_amount, max_amount, purpose, sort_by, sort_order)
    return ok({
        "nfts": [marketplace_item(nft, loan) for nft, loan in rows],
        "pagination": paginate(page, limit, total),
    })


@router.get("/{nft_id}")
async def read_nft(
    nft_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    service = MarketplaceService(db)
    nft, loan = await service.get_nft(current_user, nft_id)
    return ok(marketplace_item(nft, loan))


@router.put("/{nft_id}/list")
async def list_nft(
    nft_id: int,
    listing: ListNFTRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_borrower),
    hub: NotificationHub = Depends(get_notification_hub)
):
    service = MarketplaceService(db)
    nft = await service.list_nft(current_user, nft_id, listing.price, hub)
    return ok({"nft": NFTLoanResponse.model_validate(nft)}, "NFT listed on marketplace successfully")


@router.put("/{nft_id}/unlist")
async def unlist_nft(
    nft_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_borrower),
    hub: NotificationHub = Depends(get_notification_hub)
):
    service = MarketplaceService(db)
    nft = await service.unlist_nft(current_user, nft_id, hub)
    return ok({"nft": NFTLoanResponse.model_validate(nft)}, "NFT removed from marketplace successfully")


@router.post("/{nft_id}/transfer")
async def transfer_nft(
    nft_id: int,
    transfer: TransferNFTRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_borrower),
    minting: VerbwireClient = Depends(get_minting_client),
    hub: NotificationHub = Depends(get_notification_hub)
):
    """Transfer the token on-chain and record the new owner"""
    service = MarketplaceService(db)
    nft = await service.transfer_nft(
        current_user, nft_id, transfer.from_address, transfer.to_address, minting, hub
    )
    return ok({"nft": NFTLoanResponse.model_validate(nft)}, "NFT transferred successfully")


@router.get("/{nft_id}/ownership")
async def verify_ownership(
    nft_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    minting: VerbwireClient = Depends(get_minting_client)
):
    """Compare the on-chain owner with the recorded owner"""
    service = MarketplaceService(db)
    return ok(await service.verify_ownership(current_user, nft_id, minting))
