"""The authenticated caller as seen by route handlers."""

from pydantic import BaseModel


class AuthenticatedUser(BaseModel):
    user_id: str
    organization_id: str


__all__ = ["AuthenticatedUser"]
