from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class ActiveTransaction:
    """Server transaction token plus the writes buffered until its commit."""

    token: str
    read_only: bool = False
    pending_writes: list[dict[str, Any]] = field(default_factory=list)

    def commit_body(self) -> dict[str, Any]:
        return {"writes": list(self.pending_writes), "transaction": self.token}
