"""
All database models. Imported here so Base.metadata sees them for create_all().
"""

from .base import RecordBase
from .tracking import VisitorSession, SavedLook, ClickEvent
from .app_config import AppConfigRecord

__all__ = [
    "RecordBase",
    "VisitorSession", "SavedLook", "ClickEvent",
    "AppConfigRecord",
]
