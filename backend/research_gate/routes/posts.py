"""
Research Gate Backend — Posts Router
======================================

What:  Research posts under /api/posts: list, create, read, update, delete,
       like and comment.
How:   Documents live in the `posts` collection; authors and commenters are
       user ObjectIds. Commenting on someone else's post drops a
       notification for the author (best effort, same request).

Pagination:
    GET /api/posts?page=2&limit=10[&author=<id>][&tag=<tag>]
    Offset-based (page/limit) with total and pages in the response meta.
"""

import logging
import math
from datetime import datetime, timezone

from bson import ObjectId
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
from research_gate.routes.notifications import create_notification
from research_gate.schemas.post import CommentCreate, LikeRequest, PostCreate, PostUpdate

logger = logging.getLogger(__name__)


class PostsRouter(ResourceRouter):
    prefix = "/api/posts"

    @endpoint("GET", "/")
    async def list_posts(self, request: Request) -> Ok:
        page = int_param(request, "page", default=1)
        limit = int_param(request, "limit", default=10, maximum=100)

        query = {}
        if request.query_params.get("author"):
            query["author"] = object_id(request.query_params["author"], "author")
        if request.query_params.get("tag"):
            query["tags"] = request.query_params["tag"].strip().lower()

        posts = self.collection("posts")
        total = await posts.count_documents(query)
        cursor = (
            posts.find(query)
            .sort("created_at", -1)
            .skip((page - 1) * limit)
            .limit(limit)
        )
        items = await cursor.to_list(length=limit)

        return Ok(
            {"posts": [serialize(p) for p in items]},
            meta={
                "page": page,
                "limit": limit,
                "total": total,
                "pages": math.ceil(total / limit) if total else 0,
            },
        )

    @endpoint("POST", "/")
    async def create_post(self, request: Request) -> Ok:
        body = parse_body(PostCreate, await json_body(request))
        author = object_id(body.author, "author")

        if not await self.collection("users").find_one({"_id": author}, {"_id": 1}):
            raise ValidationError("Author not found", field="author")

        now = datetime.now(timezone.utc)
        document = {
            "title": body.title,
            "content": body.content,
            "author": author,
            "tags": body.tags,
            "attachments": body.attachments,
            "likes": [],
            "comments": [],
            "created_at": now,
            "updated_at": now,
        }
        result = await self.collection("posts").insert_one(document)
        document["_id"] = result.inserted_id
        logger.info("Post created: %s by %s", result.inserted_id, author)

        return Ok({"message": "Post created successfully", "post": serialize(document)})

    @endpoint("GET", "/{post_id}")
    async def get_post(self, request: Request, post_id: str) -> Ok:
        post = await self.collection("posts").find_one({"_id": object_id(post_id, "post id")})
        if not post:
            raise ValidationError("Post not found")
        return Ok({"post": serialize(post)})

    @endpoint("PUT", "/{post_id}")
    async def update_post(self, request: Request, post_id: str) -> Ok:
        body = parse_body(PostUpdate, await json_body(request))
        changes = body.model_dump(exclude_none=True)
        if not changes:
            raise ValidationError("No post fields to update")
        changes["updated_at"] = datetime.now(timezone.utc)

        post = await self.collection("posts").find_one_and_update(
            {"_id": object_id(post_id, "post id")},
            {"$set": changes},
            return_document=ReturnDocument.AFTER,
        )
        if not post:
            raise ValidationError("Post not found")
        return Ok({"message": "Post updated successfully", "post": serialize(post)})

    @endpoint("DELETE", "/{post_id}")
    async def delete_post(self, request: Request, post_id: str) -> Ok:
        result = await self.collection("posts").delete_one({"_id": object_id(post_id, "post id")})
        if result.deleted_count == 0:
            raise ValidationError("Post not found")
        logger.info("Post deleted: %s", post_id)
        return Ok({"message": "Post deleted successfully"})

    @endpoint("POST", "/{post_id}/like")
    async def toggle_like(self, request: Request, post_id: str) -> Ok:
        body = parse_body(LikeRequest, await json_body(request))
        user = object_id(body.user, "user")
        posts = self.collection("posts")
        pid = object_id(post_id, "post id")

        post = await posts.find_one({"_id": pid}, {"likes": 1})
        if not post:
            raise ValidationError("Post not found")

        liked = user not in post.get("likes", [])
        operation = {"$addToSet": {"likes": user}} if liked else {"$pull": {"likes": user}}
        updated = await posts.find_one_and_update(
            {"_id": pid},
            operation,
            projection={"likes": 1},
            return_document=ReturnDocument.AFTER,
        )
        likes = len((updated or {}).get("likes", []))
        return Ok({
            "message": "Post liked" if liked else "Post unliked",
            "liked": liked,
            "likes": likes,
        })

    @endpoint("POST", "/{post_id}/comments")
    async def add_comment(self, request: Request, post_id: str) -> Ok:
        body = parse_body(CommentCreate, await json_body(request))
        author = object_id(body.author, "author")
        comment = {
            "_id": ObjectId(),
            "author": author,
            "text": body.text.strip(),
            "created_at": datetime.now(timezone.utc),
        }

        post = await self.collection("posts").find_one_and_update(
            {"_id": object_id(post_id, "post id")},
            {"$push": {"comments": comment}},
            projection={"author": 1, "title": 1},
            return_document=ReturnDocument.AFTER,
        )
        if not post:
            raise ValidationError("Post not found")

        if post.get("author") and post["author"] != author:
            await create_notification(
                self.collection("notifications"),
                post["author"],
                "comment",
                f"New comment on \"{post.get('title', 'your post')}\"",
                link=f"/posts/{post['_id']}",
            )

        return Ok({"message": "Comment added", "comment": serialize(comment)})
