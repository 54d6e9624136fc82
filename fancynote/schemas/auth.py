"""Authentication schemas."""

from pydantic import BaseModel


class TokenData(BaseModel):
    """Token payload data."""

    user_id: int | None = None
