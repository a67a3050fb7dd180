"""
Session management: Redis primary tier with an in-process fallback.
"""

from .fallback import FallbackCache, SessionStoreUnavailable
from .manager import SessionManager
from .models import SessionData

__all__ = [
    # Models
    "SessionData",
    # Store
    "FallbackCache",
    "SessionManager",
    "SessionStoreUnavailable",
]
