from account_service.db.base import Base
from account_service.db.session import Database

__all__ = ["Base", "Database"]
