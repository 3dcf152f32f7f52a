from dataclasses import dataclass, field

from app.core.authorization import Role, has_any_role


@dataclass(frozen=True, slots=True)
class Actor:
    id: str
    roles: frozenset[Role] = field(default_factory=frozenset)
    email: str | None = None

    def has_any_role(self, required: frozenset[Role] | set[Role]) -> bool:
        return has_any_role(self.roles, required)
