"""
Research Gate Backend — User Profile Router
=============================================

What:  GET/PUT /api/user/{id} profile, GET /api/user/{id}/posts.
Why:   Profiles are public; the stored password hash and verification code
       are never projected out of the database.
"""

import logging
from datetime import datetime, timezone

from pymongo import ReturnDocument
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
from research_gate.schemas.user import ProfileUpdate

logger = logging.getLogger(__name__)

PROFILE_PROJECTION = {"password": 0, "verification_code": 0}


class UserRouter(ResourceRouter):
    prefix = "/api/user"

    @endpoint("GET", "/{user_id}")
    async def get_profile(self, request: Request, user_id: str) -> Ok:
        user = await self.collection("users").find_one(
            {"_id": object_id(user_id, "user id")}, PROFILE_PROJECTION
        )
        if not user:
            raise ValidationError("User not found")
        return Ok({"user": serialize(user)})

    @endpoint("PUT", "/{user_id}")
    async def update_profile(self, request: Request, user_id: str) -> Ok:
        body = parse_body(ProfileUpdate, await json_body(request))
        changes = body.model_dump(exclude_none=True)
        if not changes:
            raise ValidationError("No profile fields to update")
        changes["updated_at"] = datetime.now(timezone.utc)

        user = await self.collection("users").find_one_and_update(
            {"_id": object_id(user_id, "user id")},
            {"$set": changes},
            projection=PROFILE_PROJECTION,
            return_document=ReturnDocument.AFTER,
        )
        if not user:
            raise ValidationError("User not found")
        logger.info("Profile updated: %s (%s)", user_id, ", ".join(sorted(changes)))
        return Ok({"message": "Profile updated successfully", "user": serialize(user)})

    @endpoint("GET", "/{user_id}/posts")
    async def list_user_posts(self, request: Request, user_id: str) -> Ok:
        author = object_id(user_id, "user id")
        limit = int_param(request, "limit", default=20, maximum=100)
        cursor = self.collection("posts").find({"author": author}).sort("created_at", -1).limit(limit)
        posts = await cursor.to_list(length=limit)
        return Ok({"posts": [serialize(p) for p in posts]}, meta={"count": len(posts)})
