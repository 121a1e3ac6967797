"""Authenticated user schema."""

from typing import Any, Optional

from pydantic import BaseModel, Field


class User(BaseModel):
    """Subset of the Supabase auth user the import endpoints rely on."""

    id: str
    aud: str = "authenticated"
    role: str = "authenticated"
    email: Optional[str] = None
    app_metadata: dict[str, Any] = Field(default_factory=dict)
    user_metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[Any] = None
