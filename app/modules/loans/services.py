from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from sqlalchemy.orm.exc import StaleDataError
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple
import logging

from app.core.exceptions import (
    ValidationError, AuthorizationError, NotFoundError, ConflictError, ExternalServiceError
)
from app.modules.loans.models import Loan, LoanInstallment, LoanStatus, InstallmentStatus
from app.modules.loans.schemas import (
    LoanRequestCreate, LoanQuoteRequest, LoanQuoteResponse, LoanRepayment, LoanResponse,
    LoanApproveRequest, LoanRejectRequest, ScheduleEntryResponse
)
from app.modules.loans import amortization
from app.modules.nfts.models import NFTLoan
from app.modules.notifications.services import NotificationHub
from app.modules.users.models import User, UserRole, KYCStatus
from app.modules.users.schemas import UserSummary
from app.integrations.verbwire import VerbwireClient, LoanTokenTerms, build_loan_token_metadata

logger = logging.getLogger(__name__)


class LoanService:
    """Loan lifecycle: request, review, tokenization and repayment"""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ============ Amortization ============

    @staticmethod
    def calculate_monthly_payment(amount: Decimal, interest_rate: Decimal, term_months: int) -> Decimal:
        return amortization.calculate_monthly_payment(amount, interest_rate, term_months)

    @staticmethod
    def generate_repayment_schedule(
        amount: Decimal,
        interest_rate: Decimal,
        term_months: int,
        start_date: Optional[datetime] = None
    ) -> List[amortization.ScheduleEntry]:
        return amortization.generate_repayment_schedule(
            amount, interest_rate, term_months, start_date or datetime.utcnow()
        )

    @staticmethod
    def loan_quote(data: LoanQuoteRequest) -> LoanQuoteResponse:
        """Payment preview for a prospective loan; nothing is stored"""
        schedule = LoanService.generate_repayment_schedule(data.amount, data.interest_rate, data.term_months)
        interest = sum((entry.interest for entry in schedule), amortization.ZERO)
        return LoanQuoteResponse(
            monthly_payment=LoanService.calculate_monthly_payment(data.amount, data.interest_rate, data.term_months),
            total_interest=interest,
            total_payable=amortization.to_money(data.amount) + interest,
            schedule=[ScheduleEntryResponse.model_validate(entry) for entry in schedule],
        )

    # ============ Persistence helpers ============

    async def get_loan(self, loan_id: int) -> Loan:
        result = await self.db.execute(select(Loan).where(Loan.id == loan_id))
        loan = result.scalar_one_or_none()
        if not loan:
            raise NotFoundError("Loan not found")
        return loan

    async def get_nft_for_loan(self, loan_id: int) -> Optional[NFTLoan]:
        result = await self.db.execute(select(NFTLoan).where(NFTLoan.loan_id == loan_id))
        return result.scalar_one_or_none()

    async def _commit_transition(self, loan: Loan) -> None:
        """Commit a status change; a concurrent writer makes this a conflict"""
        # Rollback expires the instance, so read the id first
        loan_id = loan.id
        try:
            await self.db.commit()
        except StaleDataError:
            await self.db.rollback()
            logger.warning(f"Concurrent update detected on loan {loan_id}")
            raise ConflictError("Loan was modified by another request. Please reload and try again.")

    async def attach_borrowers(self, loans: Iterable[Loan]) -> List[LoanResponse]:
        """Serialize loans with borrower and approver summaries in one batched query"""
        loans = list(loans)
        user_ids = {loan.user_id for loan in loans} | {loan.approved_by for loan in loans if loan.approved_by}
        users: Dict[int, User] = {}
        if user_ids:
            result = await self.db.execute(select(User).where(User.id.in_(user_ids)))
            users = {user.id: user for user in result.scalars().all()}

        responses = []
        for loan in loans:
            response = LoanResponse.model_validate(loan)
            borrower = users.get(loan.user_id)
            approver = users.get(loan.approved_by) if loan.approved_by else None
            response.borrower = UserSummary.model_validate(borrower) if borrower else None
            response.approver = UserSummary.model_validate(approver) if approver else None
            responses.append(response)
        return responses

    async def _paginate(self, query, page: int, limit: int) -> Tuple[List[Loan], int]:
        count_result = await self.db.execute(select(func.count()).select_from(query.subquery()))
        total = count_result.scalar_one()

        result = await self.db.execute(
            query.order_by(Loan.created_at.desc(), Loan.id.desc()).offset((page - 1) * limit).limit(limit)
        )
        return list(result.scalars().all()), total

    # ============ Borrower operations ============

    async def submit_request(self, user: User, data: LoanRequestCreate, hub: NotificationHub) -> Loan:
        """Create a pending loan for a KYC-approved borrower"""
        if user.role != UserRole.USER:
            raise AuthorizationError("Only borrowers can request loans")
        if user.kyc_status != KYCStatus.APPROVED:
            raise AuthorizationError(
                f"KYC verification required. Current status: {user.kyc_status.value}"
            )

        collateral = data.collateral
        loan = Loan(
            user_id=user.id,
            amount=amortization.to_money(data.amount),
            purpose=data.purpose,
            interest_rate=amortization.to_money(data.interest_rate),
            term_months=data.term_months,
            status=LoanStatus.PENDING,
            request_date=datetime.utcnow(),
            collateral_type=collateral.type if collateral else None,
            collateral_value=amortization.to_money(collateral.value) if collateral else None,
            collateral_description=collateral.description if collateral else None,
            total_repaid=amortization.ZERO,
            remaining_balance=amortization.to_money(data.amount),
            installments=[],
        )
        self.db.add(loan)
        await self.db.commit()

        logger.info(f"Loan {loan.id} requested by user {user.id}: {loan.amount} for {loan.purpose.value}")
        await hub.loan_submitted(loan.id, user.id, loan.amount, loan.purpose.value, loan.collateral)
        return loan

    async def get_user_loans(
        self,
        user: User,
        page: int = 1,
        limit: int = 10,
        status: Optional[LoanStatus] = None
    ) -> Tuple[List[Loan], int]:
        query = select(Loan).where(Loan.user_id == user.id)
        if status is not None:
            query = query.where(Loan.status == status)
        return await self._paginate(query, page, limit)

    async def get_loan_detail(self, loan_id: int, user: User) -> Tuple[Loan, Optional[NFTLoan]]:
        """Owner (or admin) view of one loan with its token, if minted"""
        loan = await self.get_loan(loan_id)
        if user.role != UserRole.ADMIN and loan.user_id != user.id:
            raise AuthorizationError("Access denied to this loan")
        return loan, await self.get_nft_for_loan(loan.id)

    async def record_repayment(self, user: User, loan_id: int, data: LoanRepayment, hub: NotificationHub) -> Loan:
        loan = await self.get_loan(loan_id)
        if loan.user_id != user.id:
            raise AuthorizationError("Access denied to this loan")
        if loan.status != LoanStatus.ACTIVE:
            raise ConflictError("Repayments can only be made on active loans")

        amount = amortization.to_money(data.amount)
        remaining = Decimal(loan.amount) - Decimal(loan.total_repaid)
        if amount > remaining:
            raise ValidationError(f"Repayment amount exceeds remaining balance of {remaining}")

        now = datetime.utcnow()
        if data.installment_number is not None:
            installment = next(
                (i for i in loan.installments if i.installment_number == data.installment_number), None
            )
            if installment is None:
                raise NotFoundError(f"Installment {data.installment_number} not found")
            if installment.status == InstallmentStatus.PAID:
                raise ConflictError(f"Installment {data.installment_number} is already paid")
            installment.paid_amount = Decimal(installment.paid_amount) + amount
            installment.paid_date = now
            if installment.paid_amount >= Decimal(installment.amount):
                installment.status = InstallmentStatus.PAID

        loan.total_repaid = Decimal(loan.total_repaid) + amount
        loan.remaining_balance = Decimal(loan.amount) - loan.total_repaid
        if loan.remaining_balance <= 0:
            loan.status = LoanStatus.COMPLETED

        await self._commit_transition(loan)
        logger.info(f"Repayment of {amount} recorded on loan {loan.id}; remaining {loan.remaining_balance}")

        nft = await self.get_nft_for_loan(loan.id)
        await hub.marketplace_update("repayment", loan.id, nft.token_id if nft else None, amount)
        if loan.status == LoanStatus.COMPLETED:
            await hub.loan_status_changed(loan.id, loan.user_id, loan.status.value, loan.amount)
        return loan

    # ============ Admin operations ============

    async def list_loans(
        self,
        page: int = 1,
        limit: int = 10,
        status: Optional[LoanStatus] = None,
        user_id: Optional[int] = None
    ) -> Tuple[List[Loan], int]:
        query = select(Loan)
        if status is not None:
            query = query.where(Loan.status == status)
        if user_id is not None:
            query = query.where(Loan.user_id == user_id)
        return await self._paginate(query, page, limit)

    async def _mint(
        self,
        loan: Loan,
        borrower: User,
        wallet_address: str,
        minting: VerbwireClient,
        hub: NotificationHub
    ) -> NFTLoan:
        """Mint the loan token, record it and activate the loan"""
        terms = LoanTokenTerms(
            loan_id=loan.id,
            amount=loan.amount,
            interest_rate=loan.interest_rate,
            term_months=loan.term_months,
            purpose=loan.purpose.value,
            approval_date=loan.approval_date,
            borrower_name=borrower.full_name,
        )
        result = await minting.mint_loan_nft(wallet_address, terms)

        metadata = build_loan_token_metadata(terms)
        metadata["loan_details"] = {
            "amount": float(loan.amount),
            "interest_rate": float(loan.interest_rate),
            "term_months": loan.term_months,
            "purpose": loan.purpose.value,
            "status": LoanStatus.ACTIVE.value,
            "approval_date": loan.approval_date.isoformat(),
        }
        nft = NFTLoan(
            loan_id=loan.id,
            token_id=result.token_id,
            contract_address=result.contract_address,
            transaction_hash=result.transaction_hash,
            block_number=result.block_number,
            owner_address=wallet_address,
            token_metadata=metadata,
            ipfs_hash=result.ipfs_hash,
            quicknode_url=result.quicknode_url,
            minted_at=datetime.utcnow(),
            network=minting.chain,
            previous_owners=[],
        )
        self.db.add(nft)

        loan.nft_token_id = result.token_id
        loan.nft_contract_address = result.contract_address
        loan.nft_transaction_hash = result.transaction_hash
        loan.status = LoanStatus.ACTIVE
        try:
            await self._commit_transition(loan)
        except ConflictError:
            logger.warning(
                f"Token {result.token_id} on {result.contract_address} (tx {result.transaction_hash}) "
                f"was minted for loan {terms.loan_id} but not recorded; reconcile it manually"
            )
            raise

        logger.info(f"Loan {loan.id} activated with token {nft.token_id}")
        await hub.loan_funded(loan.id, loan.user_id, nft.transaction_hash, nft.token_id, loan.amount)
        return nft

    async def _borrower(self, loan: Loan) -> User:
        result = await self.db.execute(select(User).where(User.id == loan.user_id))
        borrower = result.scalar_one_or_none()
        if borrower is None:
            raise NotFoundError("Borrower not found")
        return borrower

    async def approve(
        self,
        admin: User,
        loan_id: int,
        data: LoanApproveRequest,
        minting: VerbwireClient,
        hub: NotificationHub
    ) -> Tuple[Loan, Optional[NFTLoan], Optional[str]]:
        """
        Approve a pending loan, then try to mint its token.

        The approval is committed before minting. A mint failure leaves the
        loan approved and is reported back as a warning so minting can be
        retried later.
        """
        loan = await self.get_loan(loan_id)
        if loan.status != LoanStatus.PENDING:
            raise ConflictError("Only pending loans can be approved")

        borrower = await self._borrower(loan)
        if borrower.kyc_status != KYCStatus.APPROVED:
            raise ValidationError("User must have approved KYC before loan approval")

        wallet_address = data.wallet_address or borrower.wallet_address
        if not wallet_address:
            raise ValidationError("Valid wallet address is required for NFT minting")

        now = datetime.utcnow()
        loan.status = LoanStatus.APPROVED
        loan.approval_date = now
        loan.approved_by = admin.id
        if data.admin_notes:
            loan.admin_notes = data.admin_notes

        loan.installments = [
            LoanInstallment(
                installment_number=entry.installment_number,
                due_date=entry.due_date,
                amount=entry.amount,
                principal=entry.principal,
                interest=entry.interest,
                status=InstallmentStatus.PENDING,
                paid_amount=amortization.ZERO,
            )
            for entry in self.generate_repayment_schedule(loan.amount, loan.interest_rate, loan.term_months, now)
        ]
        await self._commit_transition(loan)
        logger.info(f"Loan {loan.id} approved by admin {admin.id}")

        try:
            nft = await self._mint(loan, borrower, wallet_address, minting, hub)
        except ExternalServiceError as e:
            logger.warning(f"Loan {loan.id} approved but NFT minting failed: {e.message}")
            await hub.loan_status_changed(loan.id, loan.user_id, LoanStatus.APPROVED.value, loan.amount)
            return loan, None, f"NFT minting error: {e.message}"

        await hub.loan_status_changed(loan.id, loan.user_id, LoanStatus.APPROVED.value, loan.amount)
        return loan, nft, None

    async def reject(self, admin: User, loan_id: int, data: LoanRejectRequest, hub: NotificationHub) -> Loan:
        loan = await self.get_loan(loan_id)
        if loan.status != LoanStatus.PENDING:
            raise ConflictError("Only pending loans can be rejected")

        loan.status = LoanStatus.REJECTED
        loan.rejection_date = datetime.utcnow()
        loan.rejection_reason = data.rejection_reason
        loan.approved_by = admin.id
        if data.admin_notes:
            loan.admin_notes = data.admin_notes
        await self._commit_transition(loan)

        logger.info(f"Loan {loan.id} rejected by admin {admin.id}")
        await hub.loan_status_changed(
            loan.id, loan.user_id, LoanStatus.REJECTED.value, loan.amount, loan.rejection_reason
        )
        return loan

    async def retry_mint(
        self,
        admin: User,
        loan_id: int,
        wallet_address: Optional[str],
        minting: VerbwireClient,
        hub: NotificationHub
    ) -> Tuple[Loan, NFTLoan]:
        """Mint for an approved loan whose first mint attempt failed"""
        loan = await self.get_loan(loan_id)
        if await self.get_nft_for_loan(loan.id) is not None:
            raise ConflictError("NFT already exists for this loan")
        if loan.status != LoanStatus.APPROVED:
            raise ConflictError("Only approved loans without an NFT can be minted")

        borrower = await self._borrower(loan)
        wallet_address = wallet_address or borrower.wallet_address
        if not wallet_address:
            raise ValidationError("Valid wallet address is required for NFT minting")

        logger.info(f"Admin {admin.id} retrying mint for loan {loan.id}")
        nft = await self._mint(loan, borrower, wallet_address, minting, hub)
        return loan, nft

    async def mark_defaulted(
        self,
        admin: User,
        loan_id: int,
        admin_notes: Optional[str],
        hub: NotificationHub
    ) -> Loan:
        """Administrative default of an active loan; no overdue policy is applied"""
        loan = await self.get_loan(loan_id)
        if loan.status != LoanStatus.ACTIVE:
            raise ConflictError("Only active loans can be marked as defaulted")

        loan.status = LoanStatus.DEFAULTED
        if admin_notes:
            loan.admin_notes = admin_notes
        await self._commit_transition(loan)

        logger.info(f"Loan {loan.id} marked defaulted by admin {admin.id}")
        await hub.loan_status_changed(loan.id, loan.user_id, LoanStatus.DEFAULTED.value, loan.amount)
        return loan
