# NFTs module
from app.modules.nfts.models import NFTLoan, NFTOwnershipTransfer, MarketplaceStatus

__all__ = ["NFTLoan", "NFTOwnershipTransfer", "MarketplaceStatus"]
