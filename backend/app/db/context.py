"""Request context for identity and role checks."""

from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True)
class RequestContext:
    """Request context containing the caller's identity.

    Supplied by the identity provider; the pipelines trust it as validated.
    """

    user_id: UUID
    role: str = "student"

    @property
    def is_staff(self) -> bool:
        """Whether the caller may manage documents."""
        return self.role in ("admin", "staff")
