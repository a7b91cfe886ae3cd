"""
User API routes

Handlers only check the shape of the input. Every failure is raised as an
AppError and rendered by the centralized error stage.
"""

import logging
import re
from typing import Optional, Tuple

from fastapi import APIRouter, Depends

from models.user import (
    DeletedUser,
    UserDeletedResponse,
    UserDetailResponse,
    UserListMeta,
    UserListResponse,
    UserPayload,
    UserResponse,
)
from services.users_service import UserRepository, get_user_repository
from utils.errors import ConflictError, NotFoundError, ValidationError

router = APIRouter()
logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# Decimal (with optional fraction/exponent) or hexadecimal number literal
NUMERIC_ID_PATTERN = re.compile(r"^(?:[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?|0[xX][0-9a-fA-F]+)$")
LEADING_INTEGER_PATTERN = re.compile(r"^[+-]?\d+")

USER_NOT_FOUND_MESSAGE = "User not found"


def parse_user_id(raw: str) -> int:
    """
    Parse a path id

    Any numeric literal is accepted and truncated to its leading integer
    part ("1.5" and "1e3" are both 1); hex literals are read as hex. A
    literal with no integer part (".5") reads as 0.

    Raises:
        ValidationError: The id is not a number
    """
    raw = raw.strip()
    if not NUMERIC_ID_PATTERN.match(raw):
        raise ValidationError("Invalid user ID format")
    if raw[:2].lower() == "0x":
        return int(raw, 16)
    leading = LEADING_INTEGER_PATTERN.match(raw)
    return int(leading.group()) if leading else 0


def validate_user_payload(payload: Optional[UserPayload]) -> Tuple[str, str]:
    """
    Check name and email and return them normalized

    Returns:
        (trimmed name, trimmed lowercase email)
    """
    name = payload.name if payload is not None else None
    email = payload.email if payload is not None else None
    has_name = isinstance(name, str) and name.strip() != ""
    has_email = isinstance(email, str) and email != ""

    if not (has_name and has_email):
        raise ValidationError(
            "Name and email are required",
            extra={"received": {"name": has_name, "email": has_email}}
        )

    if not EMAIL_PATTERN.match(email):
        raise ValidationError("Invalid email format")

    return name.strip(), email.strip().lower()


def user_not_found(user_id: int) -> NotFoundError:
    return NotFoundError(USER_NOT_FOUND_MESSAGE, extra={"id": user_id})


@router.post("", response_model=UserResponse, status_code=201)
async def create_user(
    payload: Optional[UserPayload] = None,
    users: UserRepository = Depends(get_user_repository)
):
    """Create a new user"""
    name, email = validate_user_payload(payload)

    # Fast path for a friendly message; the unique index still decides races
    if await users.find_by_email(email) is not None:
        raise ConflictError("Email already exists")

    user = await users.create(name, email)
    return UserResponse(data=user, message="User created successfully")


@router.get("", response_model=UserListResponse)
async def list_users(users: UserRepository = Depends(get_user_repository)):
    """List all users"""
    data = await users.find_all()
    total = await users.count()
    return UserListResponse(data=data, meta=UserListMeta(total=total, count=len(data)))


@router.get("/{user_id}", response_model=UserDetailResponse)
async def get_user(
    user_id: str,
    users: UserRepository = Depends(get_user_repository)
):
    """Get user by ID"""
    parsed_id = parse_user_id(user_id)

    user = await users.find_by_id(parsed_id)
    if user is None:
        raise user_not_found(parsed_id)

    return UserDetailResponse(data=user)


@router.put("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: str,
    payload: Optional[UserPayload] = None,
    users: UserRepository = Depends(get_user_repository)
):
    """Replace a user's name and email"""
    parsed_id = parse_user_id(user_id)
    name, email = validate_user_payload(payload)

    if await users.find_by_id(parsed_id) is None:
        raise user_not_found(parsed_id)

    owner = await users.find_by_email(email)
    if owner is not None and owner.id != parsed_id:
        raise ConflictError("Email already exists")

    user = await users.update(parsed_id, name, email)
    if user is None:
        # Deleted between the lookup and the update
        raise user_not_found(parsed_id)

    return UserResponse(data=user, message="User updated successfully")


@router.delete("/{user_id}", response_model=UserDeletedResponse)
async def delete_user(
    user_id: str,
    users: UserRepository = Depends(get_user_repository)
):
    """Delete a user"""
    parsed_id = parse_user_id(user_id)

    user = await users.delete(parsed_id)
    if user is None:
        raise user_not_found(parsed_id)

    return UserDeletedResponse(
        message="User deleted successfully",
        data=DeletedUser(id=user.id)
    )
