"""Shared FastAPI dependencies for authentication and role checks."""

from typing import Optional

from fastapi import Depends, Request
from jose import JWTError, jwt
from pydantic import BaseModel

from lms_grading.app_logger import get_logger
from lms_grading.config import Settings
from lms_grading.errors import Forbidden, Unauthorized

logger = get_logger("auth")

STAFF_ROLES = ["ADMIN", "INSTRUCTOR"]


class CurrentUser(BaseModel):
    """The acting user as described by the verified bearer token."""

    id: str
    groups: list[str] = []
    email: Optional[str] = None

    @property
    def role(self) -> str:
        for role in ("ADMIN", "INSTRUCTOR", "STUDENT"):
            if role in self.groups:
                return role
        return "STUDENT"

    @property
    def is_staff(self) -> bool:
        return any(role in self.groups for role in STAFF_ROLES)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def decode_access_token(token: str, settings: Settings) -> dict:
    """Verify the token signature and standard claims and return its payload."""
    options = {"verify_aud": settings.JWT_AUDIENCE is not None}
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            audience=settings.JWT_AUDIENCE,
            issuer=settings.JWT_ISSUER,
            options=options,
        )
    except JWTError as e:
        logger.info("Rejected bearer token: %s", e)
        raise Unauthorized("Invalid token")


def get_current_user(
    request: Request, settings: Settings = Depends(get_settings)
) -> CurrentUser:
    """Return the user identified by the ``Authorization: Bearer`` header."""
    auth_header = request.headers.get("authorization")
    if not auth_header:
        raise Unauthorized("Authorization header missing")

    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise Unauthorized("Token missing")

    payload = decode_access_token(token, settings)
    subject = payload.get("sub")
    if not subject:
        raise Unauthorized("Token has no subject")

    return CurrentUser(
        id=subject,
        groups=payload.get("cognito:groups") or [],
        email=payload.get("email"),
    )


def require_role(required_roles: list[str]):
    """Dependency factory that enforces one of the given roles."""

    def wrapper(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if not any(role in current_user.groups for role in required_roles):
            raise Forbidden("Insufficient permissions")
        return current_user

    return wrapper


def ensure_self_or_staff(current_user: CurrentUser, student_id: str) -> None:
    """Students may only act on their own records."""
    if not current_user.is_staff and current_user.id != student_id:
        raise Forbidden("You do not have permission to access these grades")
