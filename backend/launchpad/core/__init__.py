"""
Launchpad - Core Package
========================

Core business logic, models, and schemas.
"""

from launchpad.core.config import settings
from launchpad.core.database import Base, get_db, get_db_session

__all__ = ["Base", "get_db", "get_db_session", "settings"]
