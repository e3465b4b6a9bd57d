from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple
import logging

from app.core.exceptions import ValidationError, AuthorizationError, NotFoundError, ConflictError
from app.modules.loans.models import Loan, LoanPurpose
from app.modules.nfts.models import NFTLoan, NFTOwnershipTransfer, MarketplaceStatus
from app.modules.nfts.schemas import OwnershipVerification
from app.modules.notifications.services import NotificationHub
from app.modules.users.models import User, UserRole
from app.integrations.verbwire import VerbwireClient, owner_from_response

logger = logging.getLogger(__name__)

SORT_COLUMNS = {
    "amount": Loan.amount,
    "interest_rate": Loan.interest_rate,
    "term_months": Loan.term_months,
    "listing_date": NFTLoan.listing_date,
}


class MarketplaceService:
    """Listing, unlisting, transfer and browsing of loan tokens"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_nft_with_loan(self, nft_id: int) -> Tuple[NFTLoan, Loan]:
        result = await self.db.execute(
            select(NFTLoan, Loan).join(Loan, Loan.id == NFTLoan.loan_id).where(NFTLoan.id == nft_id)
        )
        row = result.first()
        if row is None:
            raise NotFoundError("NFT not found")
        return row[0], row[1]

    async def _owned(self, user: User, nft_id: int) -> Tuple[NFTLoan, Loan]:
        nft, loan = await self.get_nft_with_loan(nft_id)
        if loan.user_id != user.id:
            raise AuthorizationError("You do not own this NFT")
        return nft, loan

    async def get_nft(self, user: User, nft_id: int) -> Tuple[NFTLoan, Loan]:
        """Admins see any token; users only their own"""
        if user.role == UserRole.ADMIN:
            return await self.get_nft_with_loan(nft_id)
        return await self._owned(user, nft_id)

    async def list_nft(self, user: User, nft_id: int, price: Decimal, hub: NotificationHub) -> NFTLoan:
        nft, loan = await self._owned(user, nft_id)
        if nft.marketplace_status != MarketplaceStatus.NOT_LISTED:
            raise ConflictError(f"NFT cannot be listed while {nft.marketplace_status.value}")
        if price <= 0:
            raise ValidationError("Listing price must be greater than zero")

        nft.marketplace_status = MarketplaceStatus.LISTED
        nft.listing_price = price
        nft.listing_date = datetime.utcnow()
        await self.db.commit()

        logger.info(f"NFT {nft.id} listed at {price} by user {user.id}")
        await hub.marketplace_update("new_listing", loan.id, nft.token_id, price)
        return nft

    async def unlist_nft(self, user: User, nft_id: int, hub: NotificationHub) -> NFTLoan:
        nft, loan = await self._owned(user, nft_id)
        if nft.marketplace_status != MarketplaceStatus.LISTED:
            raise ConflictError("NFT is not currently listed")

        nft.marketplace_status = MarketplaceStatus.NOT_LISTED
        nft.listing_price = None
        nft.listing_date = None
        await self.db.commit()

        logger.info(f"NFT {nft.id} unlisted by user {user.id}")
        await hub.marketplace_update("unlisted", loan.id, nft.token_id)
        return nft

    async def transfer_nft(
        self,
        user: User,
        nft_id: int,
        from_address: str,
        to_address: str,
        minting: VerbwireClient,
        hub: NotificationHub
    ) -> NFTLoan:
        """
        Transfer a token on-chain, then record the change of owner.
        Nothing is written if the provider call fails.
        """
        nft, loan = await self._owned(user, nft_id)
        if from_address.lower() != nft.owner_address.lower():
            raise ValidationError("From address does not match current NFT owner")
        if to_address.lower() == nft.owner_address.lower():
            raise ValidationError("Cannot transfer an NFT to its current owner")

        result = await minting.transfer_nft(
            nft.contract_address, nft.token_id, from_address, to_address, chain=nft.network
        )

        nft.previous_owners.append(NFTOwnershipTransfer(
            address=nft.owner_address,
            transfer_date=datetime.utcnow(),
            transaction_hash=result.transaction_hash,
        ))
        nft.owner_address = to_address.lower()
        if nft.marketplace_status == MarketplaceStatus.LISTED:
            nft.marketplace_status = MarketplaceStatus.SOLD
        await self.db.commit()

        logger.info(f"NFT {nft.id} transferred from {from_address} to {to_address} ({result.transaction_hash})")
        await hub.marketplace_update("ownership_transfer", loan.id, nft.token_id, nft.listing_price)
        return nft

    async def browse(
        self,
        page: int = 1,
        limit: int = 12,
        min_amount: Optional[Decimal] = None,
        max_amount: Optional[Decimal] = None,
        purpose: Optional[LoanPurpose] = None,
        sort_by: str = "listing_date",
        sort_order: str = "desc"
    ) -> Tuple[List[Tuple[NFTLoan, Loan]], int]:
        """Active listed tokens joined to their loans; tokens without a loan are skipped"""
        if sort_by not in SORT_COLUMNS:
            raise ValidationError(f"Invalid sort field. Use one of: {', '.join(SORT_COLUMNS)}")
        if sort_order not in ("asc", "desc"):
            raise ValidationError("Sort order must be asc or desc")

        query = (
            select(NFTLoan, Loan)
            .join(Loan, Loan.id == NFTLoan.loan_id)
            .where(
                NFTLoan.marketplace_status == MarketplaceStatus.LISTED,
                NFTLoan.is_active.is_(True)
            )
        )
        if min_amount is not None:
            query = query.where(Loan.amount >= min_amount)
        if max_amount is not None:
            query = query.where(Loan.amount <= max_amount)
        if purpose is not None:
            query = query.where(Loan.purpose == purpose)

        count_result = await self.db.execute(select(func.count()).select_from(query.subquery()))
        total = count_result.scalar_one()

        column = SORT_COLUMNS[sort_by]
        order = column.asc() if sort_order == "asc" else column.desc()
        result = await self.db.execute(
            query.order_by(order, NFTLoan.id.desc()).offset((page - 1) * limit).limit(limit)
        )
        return [(row[0], row[1]) for row in result.all()], total

    async def get_portfolio(self, user: User) -> List[Tuple[NFTLoan, Loan]]:
        """Tokens minted for the caller's loans"""
        result = await self.db.execute(
            select(NFTLoan, Loan)
            .join(Loan, Loan.id == NFTLoan.loan_id)
            .where(Loan.user_id == user.id)
            .order_by(NFTLoan.minted_at.desc(), NFTLoan.id.desc())
        )
        return [(row[0], row[1]) for row in result.all()]

    async def verify_ownership(self, user: User, nft_id: int, minting: VerbwireClient) -> OwnershipVerification:
        nft, _ = await self.get_nft(user, nft_id)
        data = await minting.get_nft_ownership(nft.contract_address, nft.token_id, chain=nft.network)
        on_chain_owner = owner_from_response(data)
        return OwnershipVerification(
            nft_id=nft.id,
            recorded_owner=nft.owner_address,
            on_chain_owner=on_chain_owner,
            synced=bool(on_chain_owner) and on_chain_owner.lower() == nft.owner_address.lower(),
        )

    async def list_all(
        self,
        page: int = 1,
        limit: int = 10,
        marketplace_status: Optional[MarketplaceStatus] = None
    ) -> Tuple[List[Tuple[NFTLoan, Loan]], int]:
        """Admin view of every token"""
        query = select(NFTLoan, Loan).join(Loan, Loan.id == NFTLoan.loan_id)
        if marketplace_status is not None:
            query = query.where(NFTLoan.marketplace_status == marketplace_status)

        count_result = await self.db.execute(select(func.count()).select_from(query.subquery()))
        total = count_result.scalar_one()

        result = await self.db.execute(
            query.order_by(NFTLoan.created_at.desc(), NFTLoan.id.desc()).offset((page - 1) * limit).limit(limit)
        )
        return [(row[0], row[1]) for row in result.all()], total
