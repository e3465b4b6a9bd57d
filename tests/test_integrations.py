"""
Tests for the outbound provider adapters against mocked HTTP transports
"""
import json
import pytest
import httpx
from datetime import datetime
from decimal import Decimal

from app.core.exceptions import ExternalServiceError
from app.integrations.base import provider_error_message
from app.integrations.gemini import GeminiClient
from app.integrations.pinata import PinataClient
from app.integrations.verbwire import (
    VerbwireClient, LoanTokenTerms, build_loan_token_metadata, owner_from_response
)

RECIPIENT = "0x" + "1" * 40
CONTRACT = "0x" + "c" * 40


def terms() -> LoanTokenTerms:
    return LoanTokenTerms(
        loan_id=7,
        amount=Decimal("12000.00"),
        interest_rate=Decimal("12.50"),
        term_months=12,
        purpose="business",
        approval_date=datetime(2026, 3, 4, 10, 30),
        borrower_name="Ada Lovelace",
    )


def recording_transport(status_code: int, body, seen: list) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(status_code, json=body)
    return httpx.MockTransport(handler)


class TestLoanTokenMetadata:

    @pytest.mark.unit
    def test_metadata(self):
        metadata = build_loan_token_metadata(terms())

        assert metadata["name"] == "OrbitLend Loan #7"
        assert metadata["description"] == (
            "Tokenized loan of $12,000.00 at 12.5% APR for 12 months. Purpose: business"
        )
        traits = {a["trait_type"]: a["value"] for a in metadata["attributes"]}
        assert traits["Loan Amount"] == 12000.0
        assert traits["Interest Rate"] == "12.5%"
        assert traits["Approval Date"] == "2026-03-04"
        assert traits["Borrower"] == "Ada Lovelace"

    @pytest.mark.unit
    @pytest.mark.parametrize("body,expected", [
        ({"owner": RECIPIENT}, RECIPIENT),
        ({"ownerAddress": RECIPIENT}, RECIPIENT),
        ({"owner_address": RECIPIENT}, RECIPIENT),
        ({}, None),
    ])
    def test_owner_from_response(self, body, expected):
        assert owner_from_response(body) == expected


class TestVerbwireClient:

    @pytest.mark.unit
    async def test_mint(self):
        seen = []
        client = VerbwireClient(api_key="vw-key", transport=recording_transport(200, {
            "transaction_hash": "0x" + "a" * 64,
            "token_id": 12,
            "contract_address": CONTRACT,
            "block_number": 555,
            "extra": "ignored",
        }, seen))

        result = await client.mint_loan_nft(RECIPIENT, terms())
        await client.aclose()

        assert result.token_id == "12"
        assert result.contract_address == CONTRACT
        assert result.block_number == 555
        request = seen[0]
        assert request.url.path.endswith("/nft/mint/quickMintFromMetadata")
        assert request.headers["X-API-Key"] == "vw-key"
        payload = json.loads(request.content)
        assert payload["chain"] == "sepolia"
        assert payload["recipientAddress"] == RECIPIENT
        assert payload["name"] == "OrbitLend Loan #7"

    @pytest.mark.unit
    async def test_provider_error_message_is_surfaced(self):
        client = VerbwireClient(api_key="vw-key", transport=recording_transport(
            400, {"error": {"message": "insufficient funds"}}, []
        ))

        with pytest.raises(ExternalServiceError) as exc_info:
            await client.mint_loan_nft(RECIPIENT, terms())
        await client.aclose()

        assert exc_info.value.message == "Mint NFT failed: insufficient funds"
        assert exc_info.value.status_code == 500

    @pytest.mark.unit
    async def test_unexpected_mint_response(self):
        client = VerbwireClient(api_key="vw-key", transport=recording_transport(200, {"status": "queued"}, []))

        with pytest.raises(ExternalServiceError):
            await client.mint_loan_nft(RECIPIENT, terms())
        await client.aclose()

    @pytest.mark.unit
    async def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = VerbwireClient(api_key="vw-key", transport=httpx.MockTransport(handler))

        with pytest.raises(ExternalServiceError) as exc_info:
            await client.transfer_nft(CONTRACT, "12", RECIPIENT, "0x" + "2" * 40)
        await client.aclose()

        assert exc_info.value.message == "Transfer NFT failed: connection refused"

    @pytest.mark.unit
    async def test_missing_api_key(self):
        seen = []
        client = VerbwireClient(api_key="", transport=recording_transport(200, {}, seen))

        with pytest.raises(ExternalServiceError) as exc_info:
            await client.get_nft_ownership(CONTRACT, "12")
        await client.aclose()

        assert exc_info.value.message == "Get NFT ownership failed: Verbwire API key is not configured"
        assert seen == []

    @pytest.mark.unit
    async def test_ownership_query(self):
        seen = []
        client = VerbwireClient(api_key="vw-key", transport=recording_transport(200, {"owner": RECIPIENT}, seen))

        data = await client.get_nft_ownership(CONTRACT, "12", chain="goerli")
        await client.aclose()

        assert owner_from_response(data) == RECIPIENT
        assert seen[0].url.params["chain"] == "goerli"
        assert seen[0].url.params["tokenId"] == "12"

    @pytest.mark.unit
    async def test_metadata_query_unwraps_metadata(self):
        seen = []
        client = VerbwireClient(api_key="vw-key", transport=recording_transport(200, {
            "metadata": {"name": "OrbitLend Loan #7"}, "status": "ok"
        }, seen))

        metadata = await client.get_nft_metadata(CONTRACT, "12")
        await client.aclose()

        assert metadata == {"name": "OrbitLend Loan #7"}
        assert seen[0].url.path.endswith("/nft/data/metadata")
        assert seen[0].url.params["contractAddress"] == CONTRACT
        assert seen[0].url.params["chain"] == "sepolia"

    @pytest.mark.unit
    async def test_metadata_without_wrapper(self):
        client = VerbwireClient(api_key="vw-key", transport=recording_transport(200, {"name": "bare"}, []))

        assert await client.get_nft_metadata(CONTRACT, "12") == {"name": "bare"}
        await client.aclose()

    @pytest.mark.unit
    async def test_transaction_status(self):
        seen = []
        tx_hash = "0x" + "a" * 64
        client = VerbwireClient(api_key="vw-key", transport=recording_transport(200, {
            "status": "confirmed", "block_number": 777, "gasUsed": 21000
        }, seen))

        status = await client.get_transaction_status(tx_hash, chain="goerli")
        await client.aclose()

        assert status == {"status": "confirmed", "block_number": 777}
        assert seen[0].url.path.endswith("/transaction/status")
        assert seen[0].url.params["transactionHash"] == tx_hash
        assert seen[0].url.params["chain"] == "goerli"


class TestPinataClient:

    @pytest.mark.unit
    async def test_pin_file(self):
        seen = []
        client = PinataClient(
            jwt="pin-jwt",
            gateway_url="https://gateway.example/ipfs/",
            transport=recording_transport(200, {"IpfsHash": "QmHash", "PinSize": 10}, seen),
        )

        result = await client.pin_file(b"%PDF", "id.pdf", "application/pdf", metadata={"name": "id.pdf"})
        await client.aclose()

        assert result["url"] == "https://gateway.example/ipfs/QmHash"
        assert result["PinSize"] == 10
        assert seen[0].headers["Authorization"] == "Bearer pin-jwt"
        assert b"pinataMetadata" in seen[0].content

    @pytest.mark.unit
    async def test_pin_without_hash_fails(self):
        client = PinataClient(jwt="pin-jwt", transport=recording_transport(200, {"PinSize": 10}, []))

        with pytest.raises(ExternalServiceError) as exc_info:
            await client.pin_json({"a": 1})
        await client.aclose()

        assert exc_info.value.message == "Pin JSON failed: response carried no IpfsHash"

    @pytest.mark.unit
    async def test_unpin(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, text="OK")

        client = PinataClient(jwt="pin-jwt", transport=httpx.MockTransport(handler))

        await client.unpin("QmHash")
        await client.aclose()

        assert seen[0].method == "DELETE"
        assert seen[0].url.path.endswith("/pinning/unpin/QmHash")

    @pytest.mark.unit
    async def test_unpin_unknown_hash(self):
        client = PinataClient(jwt="pin-jwt", transport=recording_transport(
            404, {"error": {"reason": "NOT_FOUND", "details": "Pin not found"}}, []
        ))

        with pytest.raises(ExternalServiceError) as exc_info:
            await client.unpin("QmMissing")
        await client.aclose()

        assert exc_info.value.message == "Unpin file failed: NOT_FOUND"

    @pytest.mark.unit
    async def test_list_pinned(self):
        seen = []
        client = PinataClient(jwt="pin-jwt", transport=recording_transport(
            200, {"count": 1, "rows": [{"ipfs_pin_hash": "QmHash"}]}, seen
        ))

        page = await client.list_pinned(offset=20, limit=5)
        await client.aclose()

        assert page["rows"][0]["ipfs_pin_hash"] == "QmHash"
        assert seen[0].url.path.endswith("/data/pinList")
        assert seen[0].url.params["pageOffset"] == "20"
        assert seen[0].url.params["pageLimit"] == "5"
        assert seen[0].url.params["status"] == "pinned"

    @pytest.mark.unit
    async def test_authentication_check(self):
        good = PinataClient(jwt="pin-jwt", transport=recording_transport(200, {"message": "Congratulations"}, []))
        bad = PinataClient(jwt="pin-jwt", transport=recording_transport(401, {"error": "Invalid token"}, []))

        assert await good.test_authentication() is True
        assert await bad.test_authentication() is False
        await good.aclose()
        await bad.aclose()


class TestGeminiClient:

    @pytest.mark.unit
    async def test_generate(self):
        seen = []
        client = GeminiClient(api_key="g-key", model="gemini-test", transport=recording_transport(200, {
            "candidates": [{"content": {"parts": [{"text": "Hello "}, {"text": "there"}]}}]
        }, seen))

        text = await client.generate("Say hello")
        await client.aclose()

        assert text == "Hello there"
        assert seen[0].url.path.endswith("/models/gemini-test:generateContent")
        assert seen[0].headers["x-goog-api-key"] == "g-key"
        body = json.loads(seen[0].content)
        assert body["contents"][0]["parts"][0]["text"] == "Say hello"
        assert body["generationConfig"]["maxOutputTokens"] == 200

    @pytest.mark.unit
    @pytest.mark.parametrize("body", [{"candidates": []}, {"candidates": [{"content": {"parts": [{"text": " "}]}}]}])
    async def test_empty_answer(self, body):
        client = GeminiClient(api_key="g-key", transport=recording_transport(200, body, []))

        with pytest.raises(ExternalServiceError) as exc_info:
            await client.generate("Say hello")
        await client.aclose()

        assert exc_info.value.message == "Generate content failed: empty response from Gemini"

    @pytest.mark.unit
    async def test_quota_error(self):
        client = GeminiClient(api_key="g-key", transport=recording_transport(
            429, {"error": {"code": 429, "message": "Resource has been exhausted"}}, []
        ))

        with pytest.raises(ExternalServiceError) as exc_info:
            await client.generate("Say hello")
        await client.aclose()

        assert exc_info.value.message == "Generate content failed: Resource has been exhausted"


class TestProviderErrorMessage:

    @pytest.mark.unit
    @pytest.mark.parametrize("response,expected", [
        (httpx.Response(400, json={"message": "bad chain"}), "bad chain"),
        (httpx.Response(400, json={"detail": "nope"}), "nope"),
        (httpx.Response(502, text="upstream down"), "upstream down"),
        (httpx.Response(503), "Service Unavailable"),
    ])
    def test_extraction(self, response, expected):
        assert provider_error_message(response) == expected
