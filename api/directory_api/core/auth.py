from dataclasses import dataclass, field


@dataclass(slots=True)
class Principal:
    subject: str
    actor_id: str
    role: str
    scopes: set[str]
    email: str | None = None
    source_address: str | None = field(default=None, compare=False)

    def require_scopes(self, required: set[str]) -> None:
        missing = required - self.scopes
        if missing:
            raise PermissionError(f"missing required scopes: {sorted(missing)}")
