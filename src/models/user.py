"""User model."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class User(BaseModel):
    """A registered user. Never carries the password hash."""

    id: int
    email: str
    first_name: str
    last_name: str
    avatar_url: Optional[str] = None
    goals: list[str] = Field(default_factory=list)
    is_active: bool = True
    email_verified: bool = False
    created_at: datetime
    updated_at: datetime
