from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Identity:
    """Who a bearer token names. Fixed for the lifetime of a connection."""

    user_id: int
    name: str
    email: str
    roles: frozenset[str] = field(default_factory=frozenset)

    @property
    def display_name(self) -> str:
        return self.name or self.email or "User"

    def has_role(self, role: str) -> bool:
        return role in self.roles

    def to_wire(self) -> dict[str, Any]:
        """Shape sent in presence events: {"id", "name", "email"}."""
        return {"id": self.user_id, "name": self.name, "email": self.email}
