from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from datetime import datetime, timedelta
from decimal import Decimal

from app.modules.admin.schemas import DashboardStats, UserStats, LoanStats, NFTStats
from app.modules.users.models import User, UserRole, KYCStatus
from app.modules.loans.models import Loan, LoanStatus
from app.modules.nfts.models import NFTLoan, MarketplaceStatus


class AdminService:
    """Read-side aggregates for the admin dashboard"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_dashboard_stats(self) -> DashboardStats:
        now = datetime.utcnow()
        week_start = now - timedelta(days=7)

        # Users
        total_users = await self.db.execute(
            select(func.count(User.id)).where(User.role == UserRole.USER)
        )
        pending_kyc = await self.db.execute(
            select(func.count(User.id)).where(
                User.role == UserRole.USER,
                User.kyc_status == KYCStatus.PENDING
            )
        )
        new_users_week = await self.db.execute(
            select(func.count(User.id)).where(
                User.role == UserRole.USER,
                User.created_at >= week_start
            )
        )

        # Loans
        by_status_rows = await self.db.execute(
            select(Loan.status, func.count(Loan.id)).group_by(Loan.status)
        )
        by_status = {status.value: 0 for status in LoanStatus}
        for loan_status, count in by_status_rows.all():
            by_status[loan_status.value] = count

        total_amount = await self.db.execute(select(func.sum(Loan.amount)))
        outstanding = await self.db.execute(
            select(func.sum(Loan.remaining_balance)).where(Loan.status == LoanStatus.ACTIVE)
        )

        # NFTs
        total_nfts = await self.db.execute(select(func.count(NFTLoan.id)))
        listed_nfts = await self.db.execute(
            select(func.count(NFTLoan.id)).where(NFTLoan.marketplace_status == MarketplaceStatus.LISTED)
        )

        return DashboardStats(
            users=UserStats(
                total=total_users.scalar() or 0,
                pending_kyc=pending_kyc.scalar() or 0,
                new_this_week=new_users_week.scalar() or 0,
            ),
            loans=LoanStats(
                total=sum(by_status.values()),
                by_status=by_status,
                total_amount=Decimal(total_amount.scalar() or 0),
                outstanding_balance=Decimal(outstanding.scalar() or 0),
            ),
            nfts=NFTStats(
                total=total_nfts.scalar() or 0,
                listed=listed_nfts.scalar() or 0,
            ),
        )
