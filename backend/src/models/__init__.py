"""
Database models for viewer entitlements.
"""

from src.models.base import TimestampMixin
from src.models.profile import Profile

__all__ = [
    "TimestampMixin",
    "Profile",
]
