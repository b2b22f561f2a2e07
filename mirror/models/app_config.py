"""
Mutable remote config record. One row, keyed "default".
"""

from sqlalchemy import String, JSON
from sqlalchemy.orm import Mapped, mapped_column

from .base import RecordBase


class AppConfigRecord(RecordBase):
    __tablename__ = "app_config"

    key: Mapped[str] = mapped_column(String, unique=True, nullable=False, default="default")
    # Partial or full RemoteConfig JSON. Missing fields fall back to defaults.
    config: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
