"""Pydantic schemas for User model validation."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..models.user import User

# Logins double as search document ids, so they follow Meilisearch's id rules
LOGIN_PATTERN = r"^[A-Za-z0-9_-]+$"


class UserBase(BaseModel):
    """Base schema with common user fields."""

    name: Optional[str] = Field(
        None,
        max_length=200,
        description="User's display name",
        examples=["John Doe"],
    )
    email: Optional[str] = Field(
        None,
        max_length=255,
        description="User's email address",
        examples=["user@example.com"],
    )
    scm_accounts: list[str] = Field(
        default_factory=list,
        description="SCM account identifiers",
        examples=[["jdoe", "john.doe@example.com"]],
    )


class UserCreate(UserBase):
    """Schema for creating a new user."""

    login: str = Field(
        ...,
        min_length=2,
        max_length=255,
        pattern=LOGIN_PATTERN,
        description="Unique login",
        examples=["jdoe"],
    )


class UserUpdate(BaseModel):
    """Schema for updating a user. Omitted fields are left unchanged."""

    name: Optional[str] = Field(None, max_length=200)
    email: Optional[str] = Field(None, max_length=255)
    scm_accounts: Optional[list[str]] = None


class UserResponse(UserBase):
    """Schema for user response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    login: str
    active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("scm_accounts", mode="before")
    @classmethod
    def split_scm_accounts(cls, value):
        """Accept the stored newline-separated form."""
        if value is None or isinstance(value, str):
            return User.decode_scm_accounts(value)
        return value
