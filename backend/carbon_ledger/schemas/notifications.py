from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel

from carbon_ledger import models


class NotificationRead(BaseModel):
    id: int
    type: models.NotificationType
    message: str
    metadata: Optional[dict[str, Any]] = None
    read: bool
    created_at: datetime
