"""Role configuration schemas."""
from pydantic import Field

from .base import BaseSchema


class RoleConfigSchema(BaseSchema):
    """Authorization data contract for one role."""

    role: str = Field(..., min_length=1, max_length=50)
    label: str
    description: str = ""
    access_level: int = Field(..., ge=1, le=5)
    permitted_views: list[str] = Field(default_factory=list)
    permissions: dict[str, list[str]] = Field(default_factory=dict)

    def allows_view(self, view: str) -> bool:
        return view in self.permitted_views

    def allows(self, module: str, action: str) -> bool:
        actions = self.permissions.get(module, [])
        return "*" in actions or action in actions
