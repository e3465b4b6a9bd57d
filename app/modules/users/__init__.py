# Users module
from app.modules.users.models import User, UserRole, KYCStatus

__all__ = ["User", "UserRole", "KYCStatus"]
