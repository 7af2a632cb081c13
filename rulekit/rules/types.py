from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class RuleType(str, Enum):
    """How the host decides whether to load a rule."""

    AGENT_REQUESTED = "agent_requested"
    ALWAYS_APPLY = "always_apply"

    @classmethod
    def parse(cls, value: Any) -> RuleType | None:
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


@dataclass
class Rule:
    """A single rule document loaded from the rules directory."""

    name: str
    path: str
    content: str
    type: RuleType | None = None
    raw_type: str | None = None
    description: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)
    has_frontmatter: bool = False
    frontmatter_error: str | None = None
    body_line: int = 1
    source: str = field(default="", repr=False)

    @property
    def always_applies(self) -> bool:
        return self.type is RuleType.ALWAYS_APPLY

    @property
    def activatable(self) -> bool:
        """True if a host could ever load this rule."""
        if self.type is RuleType.ALWAYS_APPLY:
            return True
        return self.type is RuleType.AGENT_REQUESTED and bool(self.description)
