from pydantic import BaseModel
from typing import Dict

from app.core.responses import Money


class UserStats(BaseModel):
    total: int
    pending_kyc: int
    new_this_week: int


class LoanStats(BaseModel):
    total: int
    by_status: Dict[str, int]
    total_amount: Money
    outstanding_balance: Money


class NFTStats(BaseModel):
    total: int
    listed: int


class DashboardStats(BaseModel):
    users: UserStats
    loans: LoanStats
    nfts: NFTStats
