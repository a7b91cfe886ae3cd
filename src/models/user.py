"""
User-related Pydantic models
"""

from datetime import datetime
from typing import Any, List, Mapping, Optional

from pydantic import BaseModel, Field, model_validator


class User(BaseModel):
    id: int
    name: str
    email: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "User":
        return cls(
            id=row["id"],
            name=row["name"],
            email=row["email"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


class UserPayload(BaseModel):
    """
    Body of create/update requests

    Fields accept any JSON value; the handlers decide what counts as a
    usable name and email. A body that is not an object carries no fields.
    """
    name: Optional[Any] = Field(default=None, examples=["Ann"])
    email: Optional[Any] = Field(default=None, examples=["ann@example.com"])

    @model_validator(mode="before")
    @classmethod
    def non_object_body_has_no_fields(cls, data: Any) -> Any:
        return data if isinstance(data, (dict, cls)) else {}


class UserResponse(BaseModel):
    success: bool = True
    data: User
    message: str


class UserDetailResponse(BaseModel):
    success: bool = True
    data: User


class UserListMeta(BaseModel):
    total: int
    count: int


class UserListResponse(BaseModel):
    success: bool = True
    data: List[User]
    meta: UserListMeta


class DeletedUser(BaseModel):
    id: int


class UserDeletedResponse(BaseModel):
    success: bool = True
    message: str
    data: DeletedUser
