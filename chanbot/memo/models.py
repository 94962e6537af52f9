"""Pydantic model for stored memos."""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field

DISPLAY_FORMAT = "%d/%m/%Y @ %H:%M"


class Memo(BaseModel):
    """A message left for a user who was not around.

    ``created_at`` is stored by SQLite as UTC (CURRENT_TIMESTAMP).
    """

    id: Optional[int] = None
    user_to: str = Field(..., description="Recipient nick")
    user_from: str = Field(..., description="Author nick")
    message: str = Field(..., description="Memo text")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def display_date(self) -> str:
        """Creation time in local time, e.g. ``17/10/2026 @ 14:05``."""
        created = self.created_at
        if created.tzinfo is None:
            created = created.replace(tzinfo=timezone.utc)
        return created.astimezone().strftime(DISPLAY_FORMAT)
