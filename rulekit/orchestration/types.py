from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Phase(str, Enum):
    """Work phases, in their suggested order."""

    PLAN = "plan"
    DESIGN = "design"
    IMPLEMENT = "implement"
    REVIEW = "review"
    TEST = "test"
    DEPLOY = "deploy"

    @property
    def order(self) -> int:
        return PHASE_SEQUENCE.index(self)

    @classmethod
    def parse(cls, value: str) -> Phase | None:
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


PHASE_SEQUENCE: list[Phase] = list(Phase)


def role_key(name: str) -> str:
    """Normalise a role name: lowercase, whitespace runs joined with '-'."""
    return "-".join(str(name).split()).lower()


@dataclass
class Role:
    """An agent role that work can be handed to."""

    name: str
    title: str = ""
    description: str = ""
    phases: list[Phase] = field(default_factory=list)
    hands_off_to: list[str] = field(default_factory=list)
    content: str = ""
    path: str | None = None


@dataclass
class Handoff:
    """One handoff message between two roles."""

    from_role: str
    to_role: str
    from_phase: Phase
    to_phase: Phase
    task: str = ""
    summary: str = ""
    artifacts: list[str] = field(default_factory=list)
    open_questions: list[str] = field(default_factory=list)
    next_steps: list[str] = field(default_factory=list)
