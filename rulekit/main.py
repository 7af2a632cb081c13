from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path

from rulekit.config import Config, load_config

logger = logging.getLogger(__name__)


def _setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _init_rules(config: Config) -> list:
    from rulekit.rules.loader import discover_rules
    rules = discover_rules(config.rules.dir)
    logger.info("Rules loaded: %d", len(rules))
    return rules


def _init_commands(config: Config) -> list:
    from rulekit.commands.loader import discover_commands
    commands = discover_commands(config.commands.dir)
    logger.info("Commands loaded: %d", len(commands))
    return commands


def _init_roles(config: Config) -> dict:
    from rulekit.orchestration.personas import load_roles
    return load_roles(config.orchestration.personas_dir)


def _run_list(config: Config) -> int:
    from rulekit.rules.loader import format_rules_list

    listing = format_rules_list(_init_rules(config))
    print(listing or f"No rules found in {config.rules.dir}")
    return 0


def _run_show(config: Config, name: str) -> int:
    from rulekit.rules.loader import get_rule_content

    content = get_rule_content(_init_rules(config), name)
    if content is None:
        print(f"Rule not found: {name}", file=sys.stderr)
        return 1
    print(content)
    return 0


def _run_lint(config: Config, strict: bool) -> int:
    from rulekit.rules.lint import lint_rules

    report = lint_rules(_init_rules(config), config.lint, commands=_init_commands(config))
    print(report.format_text())
    return 0 if report.ok(strict or config.lint.strict) else 1


def _run_match(config: Config, task: str, top_k: int | None, no_embeddings: bool) -> int:
    from rulekit.activation.matcher import ActivationMatcher, format_activations

    matcher = ActivationMatcher.from_config(
        config.activation,
        use_embeddings=False if no_embeddings else None,
    )
    try:
        matcher.index(_init_rules(config))
        print(format_activations(matcher.match(task, top_k=top_k)))
    finally:
        matcher.close()
    return 0


def _run_commands(config: Config, name: str | None, arguments: str) -> int:
    from rulekit.commands.loader import find_command, format_commands_list

    commands = _init_commands(config)
    if name is None:
        print(format_commands_list(commands) or f"No commands found in {config.commands.dir}")
        return 0
    command = find_command(commands, name)
    if command is None:
        print(f"Command not found: {name}", file=sys.stderr)
        return 1
    print(command.render(arguments))
    return 0


def _run_roles(config: Config) -> int:
    from rulekit.orchestration.personas import format_roles_list

    print(format_roles_list(_init_roles(config)))
    return 0


def _run_handoff_validate(config: Config, path: str) -> int:
    from rulekit.orchestration.handoff import HandoffError, parse_handoff, validate_handoff
    from rulekit.rules.lint import LintReport

    try:
        handoff = parse_handoff(Path(path).read_text(encoding="utf-8"))
    except (OSError, HandoffError) as e:
        print(f"{path}: {e}", file=sys.stderr)
        return 1

    report = LintReport(issues=validate_handoff(handoff, _init_roles(config), source=path), checked=1)
    print(report.format_text())
    return 0 if report.ok() else 1


def _run_handoff_new(
    config: Config,
    from_role: str,
    to_role: str,
    task: str,
    from_phase: str | None,
    to_phase: str | None,
) -> int:
    from rulekit.orchestration.handoff import new_handoff, render_handoff
    from rulekit.orchestration.types import Phase

    handoff = new_handoff(
        from_role,
        to_role,
        _init_roles(config),
        task=task,
        from_phase=Phase(from_phase) if from_phase else None,
        to_phase=Phase(to_phase) if to_phase else None,
    )
    print(render_handoff(handoff), end="")
    return 0


def _run_watch(config: Config) -> int:
    """Re-lint the rules whenever a rule file changes."""
    from rulekit.rules.lint import lint_rules
    from rulekit.rules.loader import RuleWatcher

    def on_update(rules: list) -> None:
        report = lint_rules(rules, config.lint)
        print(report.format_text(), flush=True)

    on_update(_init_rules(config))
    watcher = RuleWatcher(
        config.rules.dir,
        on_update=on_update,
        debounce_seconds=config.watch.debounce_seconds,
    )
    watcher.start()
    logger.info("Watching %s (Ctrl+C to stop)", config.rules.dir)
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        pass
    finally:
        watcher.stop()
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser."""
    from rulekit.orchestration.types import Phase

    parser = argparse.ArgumentParser(
        prog="rulekit",
        description="Load, lint and match assistant rule documents",
    )
    parser.add_argument(
        "--config",
        default="config.yaml",
        help="Path to config file (default: config.yaml)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    subparsers.add_parser("list", help="List loadable rules")

    show_parser = subparsers.add_parser("show", help="Print a rule body")
    show_parser.add_argument("name", help="Rule name, e.g. frontend/react")

    lint_parser = subparsers.add_parser("lint", help="Check rule and command files")
    lint_parser.add_argument("--strict", action="store_true", help="Fail on warnings too")

    match_parser = subparsers.add_parser("match", help="Show which rules a task activates")
    match_parser.add_argument("task", help="Task description")
    match_parser.add_argument("--top-k", type=int, default=None, help="Maximum matched rules")
    match_parser.add_argument("--no-embeddings", action="store_true", help="Keyword scoring only")

    commands_parser = subparsers.add_parser("commands", help="List commands or render one")
    commands_parser.add_argument("name", nargs="?", default=None, help="Command to render")
    commands_parser.add_argument("arguments", nargs="?", default="", help="Command arguments")

    subparsers.add_parser("roles", help="List orchestration roles")

    handoff_parser = subparsers.add_parser("handoff", help="Handoff messages")
    handoff_sub = handoff_parser.add_subparsers(dest="handoff_command")
    validate_parser = handoff_sub.add_parser("validate", help="Check a handoff message file")
    validate_parser.add_argument("file", help="Path to the handoff Markdown")
    new_parser = handoff_sub.add_parser("new", help="Print a handoff template")
    new_parser.add_argument("from_role", help="Sending role")
    new_parser.add_argument("to_role", help="Receiving role")
    new_parser.add_argument("--task", default="", help="Task line")
    phases = [p.value for p in Phase]
    new_parser.add_argument("--from-phase", choices=phases, default=None)
    new_parser.add_argument("--to-phase", choices=phases, default=None)

    subparsers.add_parser("watch", help="Re-lint rules on change")

    return parser


def main(args: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = build_parser()
    parsed = parser.parse_args(args)
    _setup_logging(parsed.verbose)
    config = load_config(parsed.config)

    if parsed.command == "list":
        code = _run_list(config)
    elif parsed.command == "show":
        code = _run_show(config, parsed.name)
    elif parsed.command == "lint":
        code = _run_lint(config, parsed.strict)
    elif parsed.command == "match":
        code = _run_match(config, parsed.task, parsed.top_k, parsed.no_embeddings)
    elif parsed.command == "commands":
        code = _run_commands(config, parsed.name, parsed.arguments)
    elif parsed.command == "roles":
        code = _run_roles(config)
    elif parsed.command == "handoff" and parsed.handoff_command == "validate":
        code = _run_handoff_validate(config, parsed.file)
    elif parsed.command == "handoff" and parsed.handoff_command == "new":
        code = _run_handoff_new(
            config, parsed.from_role, parsed.to_role, parsed.task,
            parsed.from_phase, parsed.to_phase,
        )
    elif parsed.command == "watch":
        code = _run_watch(config)
    else:
        parser.print_help()
        sys.exit(1)

    if code:
        sys.exit(code)


if __name__ == "__main__":
    main()
