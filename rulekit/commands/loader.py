from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from rulekit.rules.loader import parse_frontmatter

logger = logging.getLogger(__name__)

ARGUMENTS_PLACEHOLDER = "$ARGUMENTS"


@dataclass
class Command:
    """A slash command defined by a Markdown file in the commands directory."""

    name: str
    path: str
    content: str
    description: str = ""
    argument_hint: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)
    source: str = field(default="", repr=False)

    @property
    def invocation(self) -> str:
        """The slash form, e.g. ``/skill:distil`` for ``skill/distil.md``."""
        return "/" + self.name.replace("/", ":")

    def render(self, arguments: str = "") -> str:
        """Expand the command body with the given arguments."""
        arguments = arguments.strip()
        if ARGUMENTS_PLACEHOLDER in self.content:
            return self.content.replace(ARGUMENTS_PLACEHOLDER, arguments)
        if arguments:
            return f"{self.content}\n\n{arguments}"
        return self.content


def discover_commands(commands_dir: str | Path) -> list[Command]:
    """Scan the commands directory recursively for command files."""
    commands_dir = Path(commands_dir)
    if not commands_dir.is_dir():
        return []

    commands: list[Command] = []
    for path in sorted(commands_dir.rglob("*.md")):
        if not path.is_file():
            continue
        try:
            text = path.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            logger.warning("Skipping command %s: not valid UTF-8", path)
            continue

        fm = parse_frontmatter(text)
        meta = fm.metadata
        hint = meta.get("argument-hint", meta.get("argument_hint", ""))
        commands.append(
            Command(
                name=path.relative_to(commands_dir).with_suffix("").as_posix(),
                path=str(path),
                content=fm.body.strip(),
                description=str(meta.get("description") or "").strip(),
                argument_hint=str(hint or "").strip(),
                metadata=meta,
                source=text,
            )
        )

    logger.debug("Discovered %d commands in %s", len(commands), commands_dir)
    return commands


def find_command(commands: list[Command], name: str) -> Command | None:
    """Look a command up by name (``skill/distil``) or invocation (``/skill:distil``)."""
    key = name.lstrip("/").replace(":", "/")
    for c in commands:
        if c.name == key:
            return c
    return None


def format_commands_list(commands: list[Command]) -> str:
    if not commands:
        return ""
    lines = ["## Commands\n"]
    for c in commands:
        usage = f"{c.invocation} {c.argument_hint}".rstrip()
        lines.append(f"- `{usage}`" + (f": {c.description}" if c.description else ""))
    return "\n".join(lines)
