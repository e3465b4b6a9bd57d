"""Verbwire NFT minting / blockchain adapter"""
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional
import logging

import httpx
from pydantic import BaseModel, ConfigDict

from app.core.config import settings
from app.core.exceptions import ExternalServiceError
from app.integrations.base import ProviderClient

logger = logging.getLogger(__name__)


class MintResult(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    token_id: str
    contract_address: str
    transaction_hash: str
    block_number: Optional[int] = None
    ipfs_hash: Optional[str] = None
    quicknode_url: Optional[str] = None
    status: Optional[str] = None


class TransferResult(BaseModel):
    model_config = ConfigDict(extra="ignore")

    transaction_hash: str
    status: Optional[str] = None
    block_number: Optional[int] = None


class LoanTokenTerms(BaseModel):
    """Loan terms embedded in the minted token"""
    loan_id: int
    amount: Decimal
    interest_rate: Decimal
    term_months: int
    purpose: str
    approval_date: datetime
    borrower_name: str


def build_loan_token_metadata(terms: LoanTokenTerms) -> Dict[str, Any]:
    """Name, description and trait attributes for a loan token"""
    amount = float(terms.amount)
    rate = float(terms.interest_rate)
    return {
        "name": f"OrbitLend Loan #{terms.loan_id}",
        "description": (
            f"Tokenized loan of ${amount:,.2f} at {rate:g}% APR for {terms.term_months} months. "
            f"Purpose: {terms.purpose}"
        ),
        "attributes": [
            {"trait_type": "Loan Amount", "value": amount},
            {"trait_type": "Interest Rate", "value": f"{rate:g}%"},
            {"trait_type": "Term (Months)", "value": terms.term_months},
            {"trait_type": "Purpose", "value": terms.purpose},
            {"trait_type": "Borrower", "value": terms.borrower_name},
            {"trait_type": "Approval Date", "value": terms.approval_date.strftime("%Y-%m-%d")},
            {"trait_type": "Platform", "value": "OrbitLend"},
            {"trait_type": "Type", "value": "Loan Token"},
        ],
    }


class VerbwireClient(ProviderClient):
    provider = "Verbwire"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        chain: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        api_key = settings.VERBWIRE_API_KEY if api_key is None else api_key
        super().__init__(
            base_url=base_url or settings.VERBWIRE_BASE_URL,
            headers={"X-API-Key": api_key, "Content-Type": "application/json"},
            api_key=api_key,
            transport=transport,
        )
        self.chain = chain or settings.VERBWIRE_CHAIN

    async def mint_loan_nft(
        self,
        recipient_address: str,
        terms: LoanTokenTerms,
        chain: Optional[str] = None
    ) -> MintResult:
        """Mint a token representing an approved loan"""
        metadata = build_loan_token_metadata(terms)
        payload = {
            "chain": chain or self.chain,
            "recipientAddress": recipient_address,
            "name": metadata["name"],
            "description": metadata["description"],
            "attributes": metadata["attributes"],
            "allowPlatformToOperateToken": True,
        }
        logger.info(f"Minting NFT for loan {terms.loan_id} to {recipient_address}")
        data = await self.request("Mint NFT", "POST", "/nft/mint/quickMintFromMetadata", json=payload)
        try:
            result = MintResult.model_validate(data)
        except ValueError as e:
            raise ExternalServiceError(f"Mint NFT failed: unexpected response {data!r}") from e
        logger.info(f"Minted token {result.token_id} on {result.contract_address} for loan {terms.loan_id}")
        return result

    async def transfer_nft(
        self,
        contract_address: str,
        token_id: str,
        from_address: str,
        to_address: str,
        chain: Optional[str] = None
    ) -> TransferResult:
        payload = {
            "chain": chain or self.chain,
            "contractAddress": contract_address,
            "tokenId": token_id,
            "fromAddress": from_address,
            "toAddress": to_address,
        }
        data = await self.request("Transfer NFT", "POST", "/nft/transfer", json=payload)
        try:
            return TransferResult.model_validate(data)
        except ValueError as e:
            raise ExternalServiceError(f"Transfer NFT failed: unexpected response {data!r}") from e

    async def get_nft_ownership(
        self,
        contract_address: str,
        token_id: str,
        chain: Optional[str] = None
    ) -> Dict[str, Any]:
        params = {"chain": chain or self.chain, "contractAddress": contract_address, "tokenId": token_id}
        return await self.request("Get NFT ownership", "GET", "/nft/data/ownerOf", params=params)

    async def get_nft_metadata(
        self,
        contract_address: str,
        token_id: str,
        chain: Optional[str] = None
    ) -> Dict[str, Any]:
        params = {"chain": chain or self.chain, "contractAddress": contract_address, "tokenId": token_id}
        data = await self.request("Get NFT metadata", "GET", "/nft/data/metadata", params=params)
        return data.get("metadata", data) if isinstance(data, dict) else data

    async def get_transaction_status(self, transaction_hash: str, chain: Optional[str] = None) -> Dict[str, Any]:
        params = {"chain": chain or self.chain, "transactionHash": transaction_hash}
        data = await self.request("Get transaction status", "GET", "/transaction/status", params=params)
        return {"status": data.get("status"), "block_number": data.get("block_number")}


_minting_client: Optional[VerbwireClient] = None


def get_minting_client() -> VerbwireClient:
    """FastAPI dependency returning the process-wide minting client"""
    global _minting_client
    if _minting_client is None:
        _minting_client = VerbwireClient()
    return _minting_client


async def close_minting_client() -> None:
    global _minting_client
    if _minting_client is not None:
        await _minting_client.aclose()
        _minting_client = None


def owner_from_response(data: Dict[str, Any]) -> Optional[str]:
    """Owner address from an ownerOf answer, whatever key the provider used"""
    for key in ("owner", "ownerAddress", "owner_address"):
        if data.get(key):
            return str(data[key])
    return None
