from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from app.core.responses import Money
from app.core.security import is_wallet_address
from app.modules.loans.models import LoanPurpose, LoanStatus
from app.modules.nfts.models import MarketplaceStatus


def _check_wallet(v: str) -> str:
    if not is_wallet_address(v):
        raise ValueError("Invalid Ethereum wallet address format")
    return v.lower()


class ListNFTRequest(BaseModel):
    price: Decimal = Field(..., gt=0, max_digits=14, decimal_places=2)


class TransferNFTRequest(BaseModel):
    from_address: str
    to_address: str

    @field_validator("from_address", "to_address")
    @classmethod
    def validate_wallet(cls, v):
        return _check_wallet(v)


class OwnershipTransferResponse(BaseModel):
    address: str
    transfer_date: datetime
    transaction_hash: Optional[str] = None

    class Config:
        from_attributes = True


class NFTLoanResponse(BaseModel):
    id: int
    loan_id: int
    token_id: str
    contract_address: str
    transaction_hash: str
    block_number: Optional[int] = None
    owner_address: str
    previous_owners: List[OwnershipTransferResponse] = []
    token_metadata: Dict[str, Any]
    ipfs_hash: Optional[str] = None
    quicknode_url: Optional[str] = None
    minted_at: datetime
    network: str
    marketplace_status: MarketplaceStatus
    listing_price: Optional[Money] = None
    listing_date: Optional[datetime] = None
    is_active: bool
    marketplace_url: str
    explorer_url: str
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ListedLoanSummary(BaseModel):
    """Loan fields shown next to a token in the marketplace"""
    id: int
    user_id: int
    amount: Money
    purpose: LoanPurpose
    interest_rate: Money
    term_months: int
    status: LoanStatus
    total_repaid: Money
    remaining_balance: Money

    class Config:
        from_attributes = True


class MarketplaceItem(BaseModel):
    nft: NFTLoanResponse
    loan: ListedLoanSummary


class OwnershipVerification(BaseModel):
    nft_id: int
    recorded_owner: str
    on_chain_owner: Optional[str] = None
    synced: bool
