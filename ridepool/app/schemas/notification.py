"""
Notification Schemas.
"""

from pydantic import BaseModel
from datetime import datetime
from typing import Optional, Dict, Any
from ridepool.app.models.notification import NotificationKind


class NotificationResponse(BaseModel):
    id: int
    kind: NotificationKind
    ride_id: Optional[int]
    payload: Optional[Dict[str, Any]]
    is_read: bool
    created_at: datetime
    read_at: Optional[datetime]

    class Config:
        from_attributes = True
