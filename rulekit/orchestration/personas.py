from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from rulekit.orchestration.types import PHASE_SEQUENCE, Phase, Role, role_key
from rulekit.rules.loader import parse_frontmatter

logger = logging.getLogger(__name__)


def default_roles() -> dict[str, Role]:
    """The built-in roles and who each one normally hands work to."""
    roles = [
        Role(
            name="orchestrator",
            title="Orchestrator",
            description="Breaks the request down, assigns work and tracks phase progress.",
            phases=list(PHASE_SEQUENCE),
            hands_off_to=["architect", "developer", "reviewer", "tester", "devops"],
        ),
        Role(
            name="architect",
            title="Architect",
            description="Plans the change and produces the design.",
            phases=[Phase.PLAN, Phase.DESIGN],
            hands_off_to=["developer", "orchestrator"],
        ),
        Role(
            name="developer",
            title="Developer",
            description="Implements the design.",
            phases=[Phase.IMPLEMENT],
            hands_off_to=["reviewer", "tester", "orchestrator"],
        ),
        Role(
            name="reviewer",
            title="Reviewer",
            description="Reviews the implementation for correctness and style.",
            phases=[Phase.REVIEW],
            hands_off_to=["developer", "tester", "orchestrator"],
        ),
        Role(
            name="tester",
            title="Tester",
            description="Writes and runs tests against the implementation.",
            phases=[Phase.TEST],
            hands_off_to=["developer", "devops", "orchestrator"],
        ),
        Role(
            name="devops",
            title="DevOps",
            description="Ships the change and watches the rollout.",
            phases=[Phase.DEPLOY],
            hands_off_to=["developer", "orchestrator"],
        ),
    ]
    return {r.name: r for r in roles}


def _as_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    if isinstance(value, list):
        return [str(v).strip() for v in value if str(v).strip()]
    return []


def load_role(path: str | Path) -> Role:
    """Load a persona document into a Role."""
    path = Path(path)
    fm = parse_frontmatter(path.read_text(encoding="utf-8"))
    meta = fm.metadata

    phases: list[Phase] = []
    for item in _as_list(meta.get("phases")):
        phase = Phase.parse(item)
        if phase is None:
            logger.warning("Persona %s: unknown phase '%s'", path, item)
        elif phase not in phases:
            phases.append(phase)

    raw_name = str(meta.get("name") or path.stem).strip()
    name = role_key(raw_name)
    title = str(meta.get("title") or "").strip()
    if not title and raw_name.lower() != name:
        title = raw_name

    return Role(
        name=name,
        title=title,
        description=str(meta.get("description") or "").strip(),
        phases=phases,
        hands_off_to=[role_key(h) for h in _as_list(meta.get("hands_off_to"))],
        content=fm.body.strip(),
        path=str(path),
    )


def discover_roles(personas_dir: str | Path) -> list[Role]:
    """Load every persona document in the directory."""
    personas_dir = Path(personas_dir)
    if not personas_dir.is_dir():
        return []
    roles = []
    for path in sorted(personas_dir.glob("*.md")):
        try:
            roles.append(load_role(path))
        except UnicodeDecodeError:
            logger.warning("Skipping persona %s: not valid UTF-8", path)
    return roles


def load_roles(personas_dir: str | Path | None = None) -> dict[str, Role]:
    """Built-in roles, overridden or extended by persona documents.

    A persona that leaves ``phases`` or ``hands_off_to`` empty keeps the
    built-in values for a role of the same name.
    """
    roles = default_roles()
    if personas_dir is None:
        return roles

    for role in discover_roles(personas_dir):
        base = roles.get(role.name)
        if base is not None:
            role.title = role.title or base.title
            role.description = role.description or base.description
            role.phases = role.phases or base.phases
            role.hands_off_to = role.hands_off_to or base.hands_off_to
        roles[role.name] = role

    logger.debug("Loaded %d roles", len(roles))
    return roles


def format_roles_list(roles: dict[str, Role]) -> str:
    lines = ["## Roles\n"]
    for role in roles.values():
        phases = ", ".join(p.value for p in role.phases) or "-"
        targets = ", ".join(role.hands_off_to) or "-"
        label = role.title or role.name
        lines.append(f"- **{role.name}** ({label}) phases: {phases}; hands off to: {targets}")
        if role.description:
            lines.append(f"  {role.description}")
    return "\n".join(lines)
