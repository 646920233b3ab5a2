"""Authenticated caller identity."""

from pydantic import BaseModel, Field

from querycompass.constants import Role


class CurrentUser(BaseModel):
    """Identity decoded from the caller's access token."""

    user_id: str = Field(..., description="Token subject")
    username: str = Field(default="")
    role: Role = Field(default=Role.USER)

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN
