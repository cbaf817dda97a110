"""
Research Gate Backend — Auth Router
=====================================

What:  POST /api/auth/register, /api/auth/login, /api/auth/verify.
Why:   Account creation with email verification before first login.
How:   Bodies validated by schemas/auth.py; passwords hashed with passlib;
       verification codes handed to a VerificationSender.

Verification delivery is an external collaborator: the router only calls
VerificationSender.send(email, code). The default sender just logs that a
code was issued; deployments plug in a mail-backed sender.
"""

import asyncio
import logging
import secrets
from datetime import datetime, timezone
from typing import Optional, Protocol, Tuple

from passlib.context import CryptContext
from starlette.requests import Request

from research_gate.database import PersistenceHandle
from research_gate.exceptions import ValidationError
from research_gate.pipeline import Ok
from research_gate.routes.base import ResourceRouter, endpoint, json_body, parse_body, serialize
from research_gate.schemas.auth import LoginRequest, RegisterRequest, VerifyRequest

logger = logging.getLogger(__name__)

# bcrypt verifies accounts created before the move to pbkdf2_sha256;
# they are rehashed on their next successful login.
pwd_context = CryptContext(schemes=["pbkdf2_sha256", "bcrypt"], deprecated="auto")


async def hash_password(password: str) -> str:
    return await asyncio.to_thread(pwd_context.hash, password)


async def verify_password(password: str, stored_hash: Optional[str]) -> Tuple[bool, Optional[str]]:
    """
    Check `password` against a stored hash off the event loop.

    Returns (matches, replacement_hash). The replacement is set when the
    stored hash uses a deprecated scheme. A missing or unrecognized hash
    never matches.
    """
    if not stored_hash:
        return False, None
    try:
        return await asyncio.to_thread(pwd_context.verify_and_update, password, stored_hash)
    except (ValueError, TypeError):
        # passlib raises UnknownHashError (a ValueError) for foreign formats
        logger.warning("Stored password hash could not be read")
        return False, None


class VerificationSender(Protocol):
    async def send(self, email: str, code: str) -> None:
        ...


class LoggingVerificationSender:
    """Records that a code was issued. The code itself is only logged at DEBUG."""

    async def send(self, email: str, code: str) -> None:
        logger.info("Verification code issued for %s", email)
        logger.debug("Verification code for %s: %s", email, code)


def new_verification_code() -> str:
    return f"{secrets.randbelow(1_000_000):06d}"


class AuthRouter(ResourceRouter):
    prefix = "/api/auth"

    def __init__(
        self,
        persistence: PersistenceHandle,
        sender: Optional[VerificationSender] = None,
    ):
        super().__init__(persistence)
        self.sender = sender or LoggingVerificationSender()

    @endpoint("POST", "/register")
    async def register(self, request: Request) -> Ok:
        body = parse_body(RegisterRequest, await json_body(request))
        users = self.collection("users")

        if await users.find_one({"email": body.email}):
            raise ValidationError("User already exists with this email", field="email")

        code = new_verification_code()
        now = datetime.now(timezone.utc)
        result = await users.insert_one({
            "name": body.name,
            "email": body.email,
            "password": await hash_password(body.password),
            "department": body.department,
            "role": body.role,
            "is_verified": False,
            "verification_code": code,
            "created_at": now,
            "updated_at": now,
        })
        logger.info("User registered: %s", result.inserted_id)

        await self.sender.send(body.email, code)

        return Ok({
            "needsVerification": True,
            "message": "Registration successful! Please verify your email.",
            "userId": str(result.inserted_id),
        })

    @endpoint("POST", "/login")
    async def login(self, request: Request) -> Ok:
        body = parse_body(LoginRequest, await json_body(request))
        users = self.collection("users")
        user = await users.find_one({"email": body.email})

        # Same message for unknown email, wrong password and unreadable hash
        matches, new_hash = await verify_password(body.password, (user or {}).get("password"))
        if not matches:
            raise ValidationError("Invalid email or password")
        if not user.get("is_verified", False):
            raise ValidationError(
                "Please verify your email before logging in",
                field="email",
                extra={"needsVerification": True},
            )
        if new_hash:
            await users.update_one({"_id": user["_id"]}, {"$set": {"password": new_hash}})
            logger.info("Password hash upgraded for %s", user["_id"])

        return Ok({"message": "Login successful", "user": serialize(user)})

    @endpoint("POST", "/verify")
    async def verify(self, request: Request) -> Ok:
        body = parse_body(VerifyRequest, await json_body(request))
        users = self.collection("users")
        user = await users.find_one({"email": body.email})

        if not user:
            raise ValidationError("User not found", field="email")
        if user.get("is_verified"):
            return Ok({"message": "Email already verified"})
        if not secrets.compare_digest(str(user.get("verification_code", "")), body.code):
            raise ValidationError("Invalid verification code", field="code")

        await users.update_one(
            {"_id": user["_id"]},
            {
                "$set": {"is_verified": True, "updated_at": datetime.now(timezone.utc)},
                "$unset": {"verification_code": ""},
            },
        )
        logger.info("User verified: %s", user["_id"])
        return Ok({"message": "Email verified successfully"})
