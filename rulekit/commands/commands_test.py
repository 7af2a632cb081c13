from __future__ import annotations

from pathlib import Path

from rulekit.commands.loader import (
    Command,
    discover_commands,
    find_command,
    format_commands_list,
)

DISTIL = """\
---
description: "Distil a document into a reusable skill."
argument-hint: "<path>"
---

Read $ARGUMENTS and write a skill document from it.
"""


def _create_command(root: Path, rel: str, content: str) -> Path:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


def test_discover_commands(tmp_path: Path) -> None:
    _create_command(tmp_path, "skill/distil.md", DISTIL)
    _create_command(tmp_path, "review.md", "Review the diff.\n")
    commands = discover_commands(tmp_path)
    assert [c.name for c in commands] == ["review", "skill/distil"]

    distil = commands[1]
    assert distil.invocation == "/skill:distil"
    assert distil.description == "Distil a document into a reusable skill."
    assert distil.argument_hint == "<path>"
    assert distil.content.startswith("Read $ARGUMENTS")


def test_discover_commands_missing_directory(tmp_path: Path) -> None:
    assert discover_commands(tmp_path / "nope") == []


def test_find_command_by_name_or_invocation() -> None:
    commands = [Command(name="skill/distil", path="", content="")]
    assert find_command(commands, "skill/distil") is commands[0]
    assert find_command(commands, "/skill:distil") is commands[0]
    assert find_command(commands, "skill:distil") is commands[0]
    assert find_command(commands, "other") is None


def test_render_substitutes_arguments() -> None:
    command = Command(name="x", path="", content="Read $ARGUMENTS now.")
    assert command.render(" docs/a.md ") == "Read docs/a.md now."


def test_render_appends_arguments_without_placeholder() -> None:
    command = Command(name="x", path="", content="Review the diff.")
    assert command.render("focus on tests") == "Review the diff.\n\nfocus on tests"
    assert command.render() == "Review the diff."


def test_format_commands_list() -> None:
    commands = [
        Command(name="skill/distil", path="", content="", description="Distil", argument_hint="<path>"),
        Command(name="review", path="", content=""),
    ]
    result = format_commands_list(commands)
    assert "- `/skill:distil <path>`: Distil" in result
    assert "- `/review`" in result
    assert format_commands_list([]) == ""
