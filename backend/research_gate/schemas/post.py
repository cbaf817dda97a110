"""
Research Gate Backend — Post Request Schemas
==============================================

What:  Bodies accepted by /api/posts (create, update, like, comment).
"""

from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


def _clean_tags(tags: Optional[List[str]]) -> Optional[List[str]]:
    if tags is None:
        return None
    cleaned: List[str] = []
    for tag in tags:
        tag = tag.strip().lower()
        if tag and tag not in cleaned:
            cleaned.append(tag)
    return cleaned


class PostCreate(BaseModel):
    title: str = Field(min_length=1, max_length=300)
    content: str = Field(min_length=1)
    author: str = Field(description="Author user id")
    tags: List[str] = Field(default_factory=list, max_length=20)
    attachments: List[str] = Field(
        default_factory=list,
        description="URLs returned by /api/upload",
    )

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, v: List[str]) -> List[str]:
        return _clean_tags(v) or []


class PostUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=300)
    content: Optional[str] = Field(default=None, min_length=1)
    tags: Optional[List[str]] = Field(default=None, max_length=20)
    attachments: Optional[List[str]] = None

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return _clean_tags(v)


class LikeRequest(BaseModel):
    user: str = Field(description="Id of the user liking the post")


class CommentCreate(BaseModel):
    author: str = Field(description="Commenter user id")
    text: str = Field(min_length=1, max_length=2000)
