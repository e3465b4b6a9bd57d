from sqlalchemy import Column, Integer, String, Numeric, ForeignKey, DateTime, Boolean, JSON, Enum as SQLEnum
from sqlalchemy.orm import relationship
from datetime import datetime
from app.core.database import Base
import enum


class MarketplaceStatus(str, enum.Enum):
    NOT_LISTED = "not_listed"
    LISTED = "listed"
    SOLD = "sold"


MARKETPLACE_BASE_URLS = {
    "mainnet": "https://opensea.io/assets/ethereum",
    "sepolia": "https://testnets.opensea.io/assets/sepolia",
}
DEFAULT_MARKETPLACE_BASE_URL = "https://testnets.opensea.io/assets/goerli"

EXPLORER_BASE_URLS = {
    "mainnet": "https://etherscan.io",
    "sepolia": "https://sepolia.etherscan.io",
}
DEFAULT_EXPLORER_BASE_URL = "https://goerli.etherscan.io"

SUPPORTED_NETWORKS = ("sepolia", "mainnet", "goerli", "polygon", "mumbai")


class NFTLoan(Base):
    """On-chain token representing exactly one approved loan"""
    __tablename__ = "nft_loans"

    id = Column(Integer, primary_key=True, index=True)
    loan_id = Column(Integer, ForeignKey("loans.id"), unique=True, nullable=False, index=True)

    # Token identity
    token_id = Column(String(100), nullable=False, index=True)
    contract_address = Column(String(42), nullable=False, index=True)
    transaction_hash = Column(String(66), nullable=False)
    block_number = Column(Integer, nullable=True)

    # Ownership
    owner_address = Column(String(42), nullable=False, index=True)

    # Loan terms at mint time
    token_metadata = Column(JSON, nullable=False, default=dict)

    # Minting provider bookkeeping
    ipfs_hash = Column(String(100), nullable=True)
    quicknode_url = Column(String(500), nullable=True)
    minted_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    network = Column(String(20), default="sepolia", nullable=False)

    # Marketplace
    marketplace_status = Column(
        SQLEnum(MarketplaceStatus), default=MarketplaceStatus.NOT_LISTED, nullable=False, index=True
    )
    listing_price = Column(Numeric(14, 2), nullable=True)
    listing_date = Column(DateTime, nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    previous_owners = relationship(
        "NFTOwnershipTransfer",
        back_populates="nft_loan",
        cascade="all, delete-orphan",
        order_by="NFTOwnershipTransfer.id",
        lazy="selectin"
    )

    @property
    def marketplace_url(self) -> str:
        base = MARKETPLACE_BASE_URLS.get(self.network, DEFAULT_MARKETPLACE_BASE_URL)
        return f"{base}/{self.contract_address}/{self.token_id}"

    @property
    def explorer_url(self) -> str:
        base = EXPLORER_BASE_URLS.get(self.network, DEFAULT_EXPLORER_BASE_URL)
        return f"{base}/tx/{self.transaction_hash}"

    def __repr__(self):
        return f"<NFTLoan(id={self.id}, loan_id={self.loan_id}, token_id={self.token_id})>"


class NFTOwnershipTransfer(Base):
    """Previous owner entry, appended on every transfer"""
    __tablename__ = "nft_ownership_transfers"

    id = Column(Integer, primary_key=True, index=True)
    nft_loan_id = Column(Integer, ForeignKey("nft_loans.id", ondelete="CASCADE"), nullable=False, index=True)
    address = Column(String(42), nullable=False)
    transfer_date = Column(DateTime, default=datetime.utcnow, nullable=False)
    transaction_hash = Column(String(66), nullable=True)

    nft_loan = relationship("NFTLoan", back_populates="previous_owners")
