from src.core.config import settings
from src.core.database import get_db
from src.core.security import create_access_token, verify_token

__all__ = ["settings", "get_db", "create_access_token", "verify_token"]
