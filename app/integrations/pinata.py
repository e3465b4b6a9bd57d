"""Pinata IPFS pinning adapter"""
from typing import Any, Dict, Optional
import json
import logging

import httpx

from app.core.config import settings
from app.core.exceptions import ExternalServiceError
from app.integrations.base import ProviderClient

logger = logging.getLogger(__name__)


class PinataClient(ProviderClient):
    provider = "Pinata"

    def __init__(
        self,
        jwt: Optional[str] = None,
        base_url: Optional[str] = None,
        gateway_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        jwt = settings.PINATA_JWT if jwt is None else jwt
        super().__init__(
            base_url=base_url or settings.PINATA_BASE_URL,
            headers={"Authorization": f"Bearer {jwt}"},
            api_key=jwt,
            transport=transport,
        )
        self.gateway_base = (gateway_url or settings.PINATA_GATEWAY_URL).rstrip("/")

    def gateway_url(self, ipfs_hash: str) -> str:
        return f"{self.gateway_base}/{ipfs_hash}"

    @staticmethod
    def _ipfs_hash(data: Dict[str, Any], operation: str) -> str:
        ipfs_hash = data.get("IpfsHash") if isinstance(data, dict) else None
        if not ipfs_hash:
            raise ExternalServiceError(f"{operation} failed: response carried no IpfsHash")
        return ipfs_hash

    async def pin_file(
        self,
        content: bytes,
        filename: str,
        content_type: str = "application/octet-stream",
        metadata: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Pin raw file bytes; returns the provider answer plus the gateway URL"""
        files = {"file": (filename, content, content_type)}
        form = {}
        if metadata:
            form["pinataMetadata"] = json.dumps(metadata)
        data = await self.request("Pin file", "POST", "/pinning/pinFileToIPFS", files=files, data=form)
        ipfs_hash = self._ipfs_hash(data, "Pin file")
        logger.info(f"Pinned {filename} to IPFS as {ipfs_hash}")
        return {**data, "url": self.gateway_url(ipfs_hash)}

    async def pin_json(self, content: Dict[str, Any], metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        body = {"pinataContent": content, "pinataMetadata": metadata or {}}
        data = await self.request("Pin JSON", "POST", "/pinning/pinJSONToIPFS", json=body)
        ipfs_hash = self._ipfs_hash(data, "Pin JSON")
        return {**data, "url": self.gateway_url(ipfs_hash)}

    async def unpin(self, ipfs_hash: str) -> None:
        await self.request("Unpin file", "DELETE", f"/pinning/unpin/{ipfs_hash}", expect_json=False)
        logger.info(f"Unpinned {ipfs_hash}")

    async def list_pinned(self, offset: int = 0, limit: int = 10) -> Dict[str, Any]:
        params = {"pageOffset": offset, "pageLimit": limit, "status": "pinned"}
        return await self.request("List pinned files", "GET", "/data/pinList", params=params)

    async def test_authentication(self) -> bool:
        """True when the configured credentials are accepted"""
        try:
            await self.request("Test authentication", "GET", "/data/testAuthentication")
        except ExternalServiceError as e:
            logger.warning(f"Pinata authentication check failed: {e.message}")
            return False
        return True


_pinning_client: Optional[PinataClient] = None


def get_pinning_client() -> PinataClient:
    """FastAPI dependency returning the process-wide pinning client"""
    global _pinning_client
    if _pinning_client is None:
        _pinning_client = PinataClient()
    return _pinning_client


async def close_pinning_client() -> None:
    global _pinning_client
    if _pinning_client is not None:
        await _pinning_client.aclose()
        _pinning_client = None
