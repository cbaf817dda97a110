"""
Research Gate Backend — Notification Schemas
==============================================
"""

from typing import Literal, Optional

from pydantic import BaseModel, Field

NotificationType = Literal["comment", "like", "follow", "system"]


class NotificationCreate(BaseModel):
    user: str = Field(description="Recipient user id")
    type: NotificationType = "system"
    message: str = Field(min_length=1, max_length=500)
    link: Optional[str] = Field(default=None, description="Client route the notification points to")
