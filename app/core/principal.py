from dataclasses import dataclass


@dataclass(frozen=True)
class Principal:
    """Authenticated caller, as supplied by the gateway."""
    id: str
    username: str = ""
    is_admin: bool = False

    def can_access(self, owner_id: str) -> bool:
        return self.is_admin or owner_id == self.id
