"""Handoff messages between agent roles.

A handoff is a Markdown message one role leaves for the next::

    ## Handoff: architect -> developer
    **Phase:** design -> implement
    **Task:** Add password reset

    ### Summary
    Design is in docs/reset.md; the token table is new.

    ### Artifacts
    - docs/reset.md

    ### Open Questions
    - None

    ### Next Steps
    - Implement the token model

The arrow may also be written as a Unicode arrow. Headings are matched
case-insensitively.
"""
from __future__ import annotations

import re

from rulekit.orchestration.types import Handoff, Phase, Role, role_key
from rulekit.rules.lint import LintIssue, Severity

ARROW = r"(?:->|→)"

_HEADER = re.compile(rf"^#{{1,6}}\s*handoff\s*:\s*(?P<src>[\w-]+)\s*{ARROW}\s*(?P<dst>[\w-]+)\s*$", re.I)
_PHASE = re.compile(
    rf"^\*{{0,2}}phase\s*:\s*\*{{0,2}}\s*(?P<src>[A-Za-z]+)(?:\s*{ARROW}\s*(?P<dst>[A-Za-z]+))?\s*$", re.I
)
_TASK = re.compile(r"^\*{0,2}task\s*:\s*\*{0,2}\s*(?P<task>.*)$", re.I)
_SECTION = re.compile(r"^#{2,6}\s*(?P<title>summary|artifacts|open questions|next steps)\s*$", re.I)
_BULLET = re.compile(r"^\s*(?:[-*+]|\d+[.)])\s+(?P<item>.+)$")
_HEADING = re.compile(r"^#{1,6}\s")

_LIST_SECTIONS = {
    "artifacts": "artifacts",
    "open questions": "open_questions",
    "next steps": "next_steps",
}


class HandoffError(ValueError):
    """Raised when a handoff message cannot be parsed."""


def render_handoff(handoff: Handoff) -> str:
    """Render a handoff as Markdown."""
    lines = [
        f"## Handoff: {handoff.from_role} -> {handoff.to_role}",
        f"**Phase:** {handoff.from_phase.value} -> {handoff.to_phase.value}",
        f"**Task:** {handoff.task}".rstrip(),
        "",
        "### Summary",
    ]
    if handoff.summary:
        lines.append(handoff.summary.strip())
    for title, attr in (("Artifacts", "artifacts"), ("Open Questions", "open_questions"),
                        ("Next Steps", "next_steps")):
        lines.append("")
        lines.append(f"### {title}")
        items = getattr(handoff, attr)
        if items:
            lines.extend(f"- {item}" for item in items)
        else:
            lines.append("- None")
    return "\n".join(lines) + "\n"


def parse_handoff(text: str) -> Handoff:
    """Parse a handoff message.

    Raises HandoffError if the header or phase line is missing or names
    an unknown phase.
    """
    lines = text.splitlines()
    header_at = None
    for i, line in enumerate(lines):
        match = _HEADER.match(line.strip())
        if match:
            header_at = i
            from_role, to_role = match.group("src").lower(), match.group("dst").lower()
            break
    if header_at is None:
        raise HandoffError("missing '## Handoff: <from> -> <to>' header")

    from_phase = to_phase = None
    task = ""
    sections: dict[str, list[str]] = {}
    current: str | None = None

    for line in lines[header_at + 1:]:
        stripped = line.strip()
        section = _SECTION.match(stripped)
        if section:
            current = section.group("title").lower()
            sections[current] = []
            continue
        if _HEADING.match(stripped):
            current = None
            continue
        if current is not None:
            sections[current].append(line)
            continue

        phase = _PHASE.match(stripped)
        if phase and from_phase is None:
            from_phase = _phase(phase.group("src"))
            to_phase = _phase(phase.group("dst")) if phase.group("dst") else from_phase
            continue
        task_match = _TASK.match(stripped)
        if task_match and not task:
            task = task_match.group("task").strip()

    if from_phase is None or to_phase is None:
        raise HandoffError("missing '**Phase:** <phase> -> <phase>' line")

    handoff = Handoff(
        from_role=from_role,
        to_role=to_role,
        from_phase=from_phase,
        to_phase=to_phase,
        task=task,
        summary="\n".join(sections.get("summary", [])).strip(),
    )
    for title, attr in _LIST_SECTIONS.items():
        setattr(handoff, attr, _bullets(sections.get(title, [])))
    return handoff


def _phase(name: str) -> Phase:
    phase = Phase.parse(name)
    if phase is None:
        known = ", ".join(p.value for p in Phase)
        raise HandoffError(f"unknown phase '{name}' (expected one of: {known})")
    return phase


def _bullets(lines: list[str]) -> list[str]:
    items = []
    for line in lines:
        match = _BULLET.match(line)
        if not match:
            continue
        item = match.group("item").strip()
        if item.lower() not in ("none", "n/a", "-"):
            items.append(item)
    return items


def validate_handoff(
    handoff: Handoff, roles: dict[str, Role], source: str = "<handoff>"
) -> list[LintIssue]:
    """Check a handoff against the known roles and the phase sequence.

    Moving back to an earlier phase (rework) is fine; jumping past the
    next phase is reported as a warning.
    """
    issues: list[LintIssue] = []
    sender = roles.get(handoff.from_role)
    receiver = roles.get(handoff.to_role)

    for name, role in ((handoff.from_role, sender), (handoff.to_role, receiver)):
        if role is None:
            issues.append(LintIssue(source, "unknown-role", f"unknown role '{name}'"))

    if handoff.from_role == handoff.to_role:
        issues.append(LintIssue(source, "self-handoff", f"'{handoff.from_role}' hands off to itself"))

    if sender is not None and receiver is not None and handoff.to_role not in sender.hands_off_to:
        issues.append(LintIssue(
            source, "unexpected-recipient",
            f"'{sender.name}' does not normally hand off to '{receiver.name}'", Severity.WARNING,
        ))

    if handoff.to_phase.order > handoff.from_phase.order + 1:
        skipped = ", ".join(
            p.value for p in Phase if handoff.from_phase.order < p.order < handoff.to_phase.order
        )
        issues.append(LintIssue(
            source, "phase-skip",
            f"{handoff.from_phase.value} -> {handoff.to_phase.value} skips {skipped}", Severity.WARNING,
        ))

    if sender is not None and sender.phases and handoff.from_phase not in sender.phases:
        issues.append(LintIssue(
            source, "phase-mismatch",
            f"'{sender.name}' does not work in phase '{handoff.from_phase.value}'", Severity.WARNING,
        ))
    if receiver is not None and receiver.phases and handoff.to_phase not in receiver.phases:
        issues.append(LintIssue(
            source, "phase-mismatch",
            f"'{receiver.name}' does not work in phase '{handoff.to_phase.value}'", Severity.WARNING,
        ))

    if not handoff.summary:
        issues.append(LintIssue(source, "empty-summary", "handoff has no summary", Severity.WARNING))
    return issues


def new_handoff(
    from_role: str,
    to_role: str,
    roles: dict[str, Role],
    task: str = "",
    from_phase: Phase | None = None,
    to_phase: Phase | None = None,
) -> Handoff:
    """Start a handoff, filling phases from the roles when not given."""
    from_role, to_role = role_key(from_role), role_key(to_role)
    sender = roles.get(from_role)
    receiver = roles.get(to_role)
    if from_phase is None:
        from_phase = sender.phases[-1] if sender is not None and sender.phases else Phase.PLAN
    if to_phase is None:
        to_phase = receiver.phases[0] if receiver is not None and receiver.phases else from_phase
    return Handoff(
        from_role=from_role,
        to_role=to_role,
        from_phase=from_phase,
        to_phase=to_phase,
        task=task,
    )
