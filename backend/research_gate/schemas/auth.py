"""
Research Gate Backend — Auth Request Schemas
==============================================

What:  Bodies accepted by /api/auth/register, /login and /verify.
Why:   Field rules live here so the router only orchestrates. The router
       turns the first failing field into a 400 such as "email required".
"""

from typing import Optional

from pydantic import BaseModel, Field, field_validator


def normalize_email(value: str) -> str:
    email = value.strip().lower()
    local, _, domain = email.partition("@")
    if not local or "." not in domain or domain.startswith(".") or domain.endswith("."):
        raise ValueError("invalid email address")
    return email


class RegisterRequest(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    email: str
    password: str = Field(min_length=6, max_length=128)
    department: Optional[str] = Field(default=None, max_length=120)
    role: str = Field(default="researcher", max_length=40)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name cannot be blank")
        return v

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return normalize_email(v)


class LoginRequest(BaseModel):
    email: str
    password: str = Field(min_length=1)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return normalize_email(v)


class VerifyRequest(BaseModel):
    email: str
    code: str = Field(min_length=4, max_length=12)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return normalize_email(v)
