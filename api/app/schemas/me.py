from pydantic import BaseModel, Field

from app.core.authorization import Role


class NavItemOut(BaseModel):
    title: str
    href: str


class MeOut(BaseModel):
    id: str
    email: str | None = None
    roles: list[Role] = Field(default_factory=list)
    role_labels: list[str] = Field(default_factory=list)
    navigation: list[NavItemOut] = Field(default_factory=list)
