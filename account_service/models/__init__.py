from account_service.models.user import User

__all__ = ["User"]
