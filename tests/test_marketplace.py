"""
Tests for loan token listing, transfer and marketplace browsing
"""
import pytest
from decimal import Decimal

from app.modules.loans.models import LoanPurpose
from app.modules.loans.schemas import LoanApproveRequest
from app.modules.loans.services import LoanService
from app.modules.nfts.services import MarketplaceService
from app.modules.notifications.services import NotificationHub

from tests.conftest import create_loan, BORROWER_WALLET, OTHER_WALLET

NEW_OWNER = "0x" + "3" * 40
HEX_OWNER = "0x" + "abcdef0123" * 4


async def list_token(client, nft_id, headers, price=12500):
    return await client.put(f"/api/nfts/{nft_id}/list", headers=headers, json={"price": price})


class TestListing:

    @pytest.mark.integration
    async def test_list_and_unlist(self, client, active_loan, borrower_headers, hub):
        _, nft = active_loan

        listed = await list_token(client, nft.id, borrower_headers)
        unlisted = await client.put(f"/api/nfts/{nft.id}/unlist", headers=borrower_headers)

        assert listed.status_code == 200
        listed_nft = listed.json()["data"]["nft"]
        assert listed_nft["marketplace_status"] == "listed"
        assert listed_nft["listing_price"] == 12500.0
        assert listed_nft["listing_date"] is not None

        assert unlisted.status_code == 200
        unlisted_nft = unlisted.json()["data"]["nft"]
        assert unlisted_nft["marketplace_status"] == "not_listed"
        assert unlisted_nft["listing_price"] is None

        updates = [d["type"] for r, e, d in hub.events if r == "marketplace-updates"]
        assert updates == ["new_listing", "unlisted"]

    @pytest.mark.integration
    async def test_list_twice_conflicts(self, client, active_loan, borrower_headers):
        _, nft = active_loan

        await list_token(client, nft.id, borrower_headers)
        response = await list_token(client, nft.id, borrower_headers)

        assert response.status_code == 409

    @pytest.mark.integration
    async def test_unlist_not_listed_conflicts(self, client, active_loan, borrower_headers):
        _, nft = active_loan

        response = await client.put(f"/api/nfts/{nft.id}/unlist", headers=borrower_headers)

        assert response.status_code == 409
        assert response.json()["message"] == "NFT is not currently listed"

    @pytest.mark.integration
    async def test_price_must_be_positive(self, client, active_loan, borrower_headers):
        _, nft = active_loan

        response = await list_token(client, nft.id, borrower_headers, price=0)

        assert response.status_code == 400

    @pytest.mark.integration
    async def test_only_owner_can_list(self, client, active_loan, other_headers):
        _, nft = active_loan

        response = await list_token(client, nft.id, other_headers)

        assert response.status_code == 403
        assert response.json()["message"] == "You do not own this NFT"

    @pytest.mark.integration
    async def test_missing_token(self, client, borrower, borrower_headers):
        response = await list_token(client, 404, borrower_headers)

        assert response.status_code == 404


class TestTransfer:

    @pytest.mark.integration
    async def test_transfer_records_previous_owner(self, client, active_loan, borrower_headers, minting, hub):
        _, nft = active_loan

        response = await client.post(f"/api/nfts/{nft.id}/transfer", headers=borrower_headers, json={
            "from_address": BORROWER_WALLET,
            "to_address": NEW_OWNER,
        })

        assert response.status_code == 200
        data = response.json()["data"]["nft"]
        assert data["owner_address"] == NEW_OWNER
        assert data["marketplace_status"] == "not_listed"
        assert len(data["previous_owners"]) == 1
        assert data["previous_owners"][0]["address"] == BORROWER_WALLET
        assert data["previous_owners"][0]["transaction_hash"] == "0x" + "ab" * 32
        assert minting.transfers == [(nft.contract_address, nft.token_id, BORROWER_WALLET, NEW_OWNER)]
        assert "marketplace:update" in hub.names("marketplace-updates")

    @pytest.mark.integration
    async def test_transfer_of_listed_token_marks_sold(self, client, active_loan, borrower_headers):
        _, nft = active_loan
        await list_token(client, nft.id, borrower_headers)

        response = await client.post(f"/api/nfts/{nft.id}/transfer", headers=borrower_headers, json={
            "from_address": BORROWER_WALLET, "to_address": NEW_OWNER
        })

        assert response.status_code == 200
        assert response.json()["data"]["nft"]["marketplace_status"] == "sold"

    @pytest.mark.integration
    async def test_from_address_case_is_ignored(self, client, db_session, active_loan, borrower_headers):
        _, nft = active_loan
        nft.owner_address = HEX_OWNER
        await db_session.commit()

        mismatch = await client.post(f"/api/nfts/{nft.id}/transfer", headers=borrower_headers, json={
            "from_address": "0x" + "ABCDEF0124" * 4, "to_address": NEW_OWNER
        })
        response = await client.post(f"/api/nfts/{nft.id}/transfer", headers=borrower_headers, json={
            "from_address": HEX_OWNER.upper().replace("0X", "0x"), "to_address": NEW_OWNER
        })

        assert mismatch.status_code == 400
        assert response.status_code == 200
        assert response.json()["data"]["nft"]["previous_owners"][0]["address"] == HEX_OWNER

    @pytest.mark.integration
    async def test_service_compares_owner_case_insensitively(
        self, db_session, active_loan, borrower, minting, hub
    ):
        _, nft = active_loan
        nft.owner_address = HEX_OWNER
        await db_session.commit()

        moved = await MarketplaceService(db_session).transfer_nft(
            borrower, nft.id, "0x" + "AbCdEf0123" * 4, NEW_OWNER, minting, hub
        )

        assert moved.owner_address == NEW_OWNER
        assert minting.transfers[0][2] == "0x" + "AbCdEf0123" * 4

    @pytest.mark.integration
    async def test_transfer_from_mismatch(self, client, active_loan, borrower_headers, minting):
        _, nft = active_loan

        response = await client.post(f"/api/nfts/{nft.id}/transfer", headers=borrower_headers, json={
            "from_address": OTHER_WALLET, "to_address": NEW_OWNER
        })

        assert response.status_code == 400
        assert response.json()["message"] == "From address does not match current NFT owner"
        assert minting.transfers == []

    @pytest.mark.integration
    async def test_transfer_rejects_bad_address(self, client, active_loan, borrower_headers):
        _, nft = active_loan

        response = await client.post(f"/api/nfts/{nft.id}/transfer", headers=borrower_headers, json={
            "from_address": BORROWER_WALLET, "to_address": "0x1234"
        })

        assert response.status_code == 400

    @pytest.mark.integration
    async def test_provider_failure_changes_nothing(self, client, active_loan, borrower_headers, minting):
        _, nft = active_loan
        minting.fail_with = "execution reverted"

        response = await client.post(f"/api/nfts/{nft.id}/transfer", headers=borrower_headers, json={
            "from_address": BORROWER_WALLET, "to_address": NEW_OWNER
        })

        assert response.status_code == 500
        body = response.json()
        assert body["error"] == "ExternalServiceError"
        assert body["message"] == "Transfer NFT failed: execution reverted"
        assert nft.owner_address == BORROWER_WALLET
        assert nft.previous_owners == []


class TestBrowse:

    @pytest.fixture
    async def listed_tokens(self, db_session, borrower, admin, minting):
        """Three minted loans of different sizes, two of them listed"""
        service = LoanService(db_session)
        market = []
        for amount, purpose in (("5000.00", LoanPurpose.EDUCATION), ("20000.00", LoanPurpose.BUSINESS),
                                ("50000.00", LoanPurpose.BUSINESS)):
            loan = await create_loan(db_session, borrower, amount=amount, purpose=purpose)
            _, nft, _ = await service.approve(admin, loan.id, LoanApproveRequest(), minting, NotificationHub())
            market.append(nft)

        marketplace = MarketplaceService(db_session)
        await marketplace.list_nft(borrower, market[0].id, Decimal("5100"), NotificationHub())
        await marketplace.list_nft(borrower, market[1].id, Decimal("21000"), NotificationHub())
        return market

    @pytest.mark.integration
    async def test_browse_lists_only_listed(self, client, listed_tokens, other_headers):
        response = await client.get("/api/nfts/marketplace/browse?sort_by=amount&sort_order=asc", headers=other_headers)

        assert response.status_code == 200
        data = response.json()["data"]
        amounts = [item["loan"]["amount"] for item in data["nfts"]]
        assert amounts == [5000.0, 20000.0]
        assert data["pagination"]["total"] == 2
        assert data["nfts"][0]["nft"]["id"] == listed_tokens[0].id

    @pytest.mark.integration
    async def test_browse_filters(self, client, listed_tokens, other_headers):
        by_amount = await client.get("/api/nfts/marketplace/browse?min_amount=10000", headers=other_headers)
        by_purpose = await client.get("/api/nfts/marketplace/browse?purpose=education", headers=other_headers)

        assert [i["loan"]["amount"] for i in by_amount.json()["data"]["nfts"]] == [20000.0]
        assert [i["loan"]["purpose"] for i in by_purpose.json()["data"]["nfts"]] == ["education"]

    @pytest.mark.integration
    async def test_browse_rejects_unknown_sort(self, client, listed_tokens, other_headers):
        response = await client.get("/api/nfts/marketplace/browse?sort_by=owner", headers=other_headers)

        assert response.status_code == 400

    @pytest.mark.integration
    async def test_portfolio(self, client, listed_tokens, borrower_headers, other_headers):
        mine = await client.get("/api/nfts/my-portfolio", headers=borrower_headers)
        theirs = await client.get("/api/nfts/my-portfolio", headers=other_headers)

        assert mine.json()["data"]["count"] == 3
        assert theirs.json()["data"]["count"] == 0

    @pytest.mark.integration
    async def test_admin_lists_all_tokens(self, client, listed_tokens, admin_headers):
        response = await client.get("/api/admin/nfts?marketplaceStatus=not_listed", headers=admin_headers)

        assert response.status_code == 200
        data = response.json()["data"]
        assert [item["nft"]["id"] for item in data["nfts"]] == [listed_tokens[2].id]


class TestOwnership:

    @pytest.mark.integration
    async def test_ownership_in_sync(self, client, active_loan, borrower_headers, minting):
        _, nft = active_loan
        minting.owner = BORROWER_WALLET

        response = await client.get(f"/api/nfts/{nft.id}/ownership", headers=borrower_headers)

        assert response.status_code == 200
        assert response.json()["data"] == {
            "nft_id": nft.id,
            "recorded_owner": BORROWER_WALLET,
            "on_chain_owner": minting.owner,
            "synced": True,
        }

    @pytest.mark.integration
    async def test_ownership_out_of_sync(self, client, active_loan, borrower_headers, minting):
        _, nft = active_loan
        minting.owner = NEW_OWNER

        response = await client.get(f"/api/nfts/{nft.id}/ownership", headers=borrower_headers)

        assert response.json()["data"]["synced"] is False

    @pytest.mark.integration
    async def test_token_detail_hidden_from_others(self, client, active_loan, other_headers, admin_headers):
        _, nft = active_loan

        denied = await client.get(f"/api/nfts/{nft.id}", headers=other_headers)
        allowed = await client.get(f"/api/nfts/{nft.id}", headers=admin_headers)

        assert denied.status_code == 403
        assert allowed.status_code == 200
        assert allowed.json()["data"]["nft"]["explorer_url"].startswith("https://sepolia.etherscan.io/tx/")
