"""
Research Gate Backend — User Profile Schemas
==============================================

What:  Fields a user may change on their own profile.
Why:   Whitelist: email, password and verification state are not updatable here.
"""

from typing import List, Optional

from pydantic import BaseModel, Field


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    department: Optional[str] = Field(default=None, max_length=120)
    designation: Optional[str] = Field(default=None, max_length=120)
    bio: Optional[str] = Field(default=None, max_length=2000)
    avatar: Optional[str] = Field(default=None, description="URL returned by /api/upload")
    interests: Optional[List[str]] = Field(default=None, max_length=50)

    model_config = {"extra": "ignore"}
