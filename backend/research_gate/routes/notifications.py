"""
Research Gate Backend — Notifications Router
==============================================

What:  Per-user notification feed under /api/notifications.

Endpoints:
    GET  /api/notifications?user=<id>           newest first, unreadCount in meta
    POST /api/notifications                     create one
    PUT  /api/notifications/{id}/read           mark one read
    PUT  /api/notifications/read-all?user=<id>  mark all read

create_notification() is shared with the posts router (comment alerts).
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from bson import ObjectId
from starlette.requests import Request

from research_gate.exceptions import ValidationError
from research_gate.pipeline import Ok
from research_gate.routes.base import (
    ResourceRouter,
    endpoint,
    int_param,
    json_body,
    object_id,
    parse_body,
    serialize,
)
from research_gate.schemas.notification import NotificationCreate

logger = logging.getLogger(__name__)


async def create_notification(
    collection: Any,
    user: ObjectId,
    type_: str,
    message: str,
    link: Optional[str] = None,
) -> Dict[str, Any]:
    document = {
        "user": user,
        "type": type_,
        "message": message,
        "link": link,
        "read": False,
        "created_at": datetime.now(timezone.utc),
    }
    result = await collection.insert_one(document)
    document["_id"] = result.inserted_id
    return document


class NotificationsRouter(ResourceRouter):
    prefix = "/api/notifications"

    def _user_filter(self, request: Request) -> ObjectId:
        raw = request.query_params.get("user")
        if not raw:
            raise ValidationError("user query parameter required", field="user")
        return object_id(raw, "user")

    @endpoint("GET", "/")
    async def list_notifications(self, request: Request) -> Ok:
        user = self._user_filter(request)
        limit = int_param(request, "limit", default=50, maximum=200)
        notifications = self.collection("notifications")

        cursor = notifications.find({"user": user}).sort("created_at", -1).limit(limit)
        items = await cursor.to_list(length=limit)
        unread = await notifications.count_documents({"user": user, "read": False})

        return Ok(
            {"notifications": [serialize(n) for n in items]},
            meta={"unreadCount": unread, "limit": limit},
        )

    @endpoint("POST", "/")
    async def create(self, request: Request) -> Ok:
        body = parse_body(NotificationCreate, await json_body(request))
        document = await create_notification(
            self.collection("notifications"),
            object_id(body.user, "user"),
            body.type,
            body.message,
            body.link,
        )
        return Ok({"message": "Notification created", "notification": serialize(document)})

    @endpoint("PUT", "/read-all")
    async def mark_all_read(self, request: Request) -> Ok:
        user = self._user_filter(request)
        result = await self.collection("notifications").update_many(
            {"user": user, "read": False},
            {"$set": {"read": True}},
        )
        return Ok({"message": "All notifications marked as read", "updated": result.modified_count})

    @endpoint("PUT", "/{notification_id}/read")
    async def mark_read(self, request: Request, notification_id: str) -> Ok:
        result = await self.collection("notifications").update_one(
            {"_id": object_id(notification_id, "notification id")},
            {"$set": {"read": True}},
        )
        if result.matched_count == 0:
            raise ValidationError("Notification not found")
        return Ok({"message": "Notification marked as read"})
