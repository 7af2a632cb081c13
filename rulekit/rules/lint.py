from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Iterable

from rulekit.rules.types import Rule, RuleType

if TYPE_CHECKING:
    from rulekit.commands.loader import Command
    from rulekit.config import LintConfig

logger = logging.getLogger(__name__)

KNOWN_KEYS = frozenset({"type", "description"})

CHECK_CODES = (
    "missing-frontmatter",
    "invalid-frontmatter",
    "missing-type",
    "unknown-type",
    "missing-description",
    "unknown-key",
    "empty-body",
    "secret",
    "env-reference",
)


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass
class LintIssue:
    path: str
    code: str
    message: str
    severity: Severity = Severity.ERROR
    line: int | None = None

    def format(self) -> str:
        where = f"{self.path}:{self.line}" if self.line else self.path
        return f"{where}: {self.severity.value} [{self.code}] {self.message}"


@dataclass
class LintReport:
    """All issues found across a set of documents."""

    issues: list[LintIssue] = field(default_factory=list)
    checked: int = 0

    @property
    def errors(self) -> list[LintIssue]:
        return [i for i in self.issues if i.severity is Severity.ERROR]

    @property
    def warnings(self) -> list[LintIssue]:
        return [i for i in self.issues if i.severity is Severity.WARNING]

    def ok(self, strict: bool = False) -> bool:
        if self.errors:
            return False
        return not (strict and self.warnings)

    def format_text(self) -> str:
        lines = [issue.format() for issue in self.issues]
        lines.append(
            f"{self.checked} file(s) checked: "
            f"{len(self.errors)} error(s), {len(self.warnings)} warning(s)"
        )
        return "\n".join(lines)


# (label, pattern) pairs for credential-shaped content.
SECRET_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    ("private key", re.compile(r"-----BEGIN (?:RSA |EC |DSA |OPENSSH |PGP )?PRIVATE KEY(?: BLOCK)?-----")),
    ("AWS access key", re.compile(r"\b(?:AKIA|ASIA)[0-9A-Z]{16}\b")),
    ("GitHub token", re.compile(r"\bgh[pousr]_[A-Za-z0-9]{36,}\b")),
    ("GitHub token", re.compile(r"\bgithub_pat_[A-Za-z0-9_]{40,}\b")),
    ("Slack token", re.compile(r"\bxox[abprs]-[A-Za-z0-9-]{10,}")),
    ("Anthropic API key", re.compile(r"\bsk-ant-[A-Za-z0-9_-]{20,}")),
    ("OpenAI API key", re.compile(r"\bsk-(?:proj-)?[A-Za-z0-9]{32,}\b")),
    ("Google API key", re.compile(r"\bAIza[0-9A-Za-z_-]{35}\b")),
]

_ASSIGNMENT = re.compile(
    r"(?i)\b(?P<key>[a-z0-9_]*(?:password|passwd|secret|token|api[_-]?key)[a-z0-9_]*)"
    r"\s*[:=]\s*(?P<quote>['\"])(?P<value>[^'\"\s]{8,})(?P=quote)"
)

_PLACEHOLDER_HINTS = ("<", ">", "${", "{{", "...", "xxx", "your", "example", "placeholder",
                      "changeme", "change_me", "redacted", "dummy", "process.env", "os.environ")

# `.env`, `.env.local`, `config/.env`; not `process.env` or `os.environ`.
_ENV_REFERENCE = re.compile(r"(?<![\w.])\.env(?:\.[A-Za-z0-9_-]+)?(?![\w-])")


def _is_placeholder(value: str) -> bool:
    lowered = value.lower()
    if any(hint in lowered for hint in _PLACEHOLDER_HINTS):
        return True
    return len(set(lowered)) <= 2


def scan_secrets(text: str, start_line: int = 1) -> list[tuple[int, str]]:
    """Return (line, label) for every credential-like match in ``text``."""
    found: list[tuple[int, str]] = []
    for offset, line in enumerate(text.split("\n")):
        lineno = start_line + offset
        for label, pattern in SECRET_PATTERNS:
            if pattern.search(line):
                found.append((lineno, label))
                break
        else:
            match = _ASSIGNMENT.search(line)
            if match and not _is_placeholder(match.group("value")):
                found.append((lineno, f"hard-coded {match.group('key')}"))
    return found


def scan_env_references(text: str, start_line: int = 1) -> list[tuple[int, str]]:
    """Return (line, reference) for every `.env` file reference in ``text``."""
    found: list[tuple[int, str]] = []
    for offset, line in enumerate(text.split("\n")):
        for match in _ENV_REFERENCE.finditer(line):
            found.append((start_line + offset, match.group(0)))
    return found


def _content_issues(
    path: str, text: str, config: LintConfig | None
) -> list[LintIssue]:
    issues = [
        LintIssue(path, "secret", f"possible {label} in document", Severity.ERROR, line)
        for line, label in scan_secrets(text)
    ]
    if config is None or config.forbid_env_references:
        issues.extend(
            LintIssue(path, "env-reference", f"reference to env file '{ref}'", Severity.ERROR, line)
            for line, ref in scan_env_references(text)
        )
    return issues


def lint_rule(rule: Rule, config: LintConfig | None = None) -> list[LintIssue]:
    """Check a single rule document."""
    issues: list[LintIssue] = []
    path = rule.path

    if not rule.has_frontmatter:
        if rule.frontmatter_error:
            issues.append(LintIssue(path, "invalid-frontmatter", rule.frontmatter_error))
        else:
            issues.append(LintIssue(
                path, "missing-frontmatter",
                "no frontmatter block; the host cannot tell when to load this rule", line=1,
            ))
    elif rule.frontmatter_error:
        severity = Severity.WARNING if rule.metadata else Severity.ERROR
        issues.append(LintIssue(path, "invalid-frontmatter", rule.frontmatter_error, severity, line=1))

    if rule.has_frontmatter and (rule.metadata or not rule.frontmatter_error):
        if rule.raw_type is None:
            issues.append(LintIssue(path, "missing-type", "frontmatter has no 'type'", line=1))
        elif rule.type is None:
            allowed = ", ".join(t.value for t in RuleType)
            issues.append(LintIssue(
                path, "unknown-type",
                f"unknown type '{rule.raw_type}' (expected one of: {allowed})", line=1,
            ))

        if rule.type is RuleType.AGENT_REQUESTED and not rule.description:
            issues.append(LintIssue(
                path, "missing-description",
                "agent_requested rule needs a non-empty 'description' to be activated", line=1,
            ))

        for key in rule.metadata:
            if key not in KNOWN_KEYS:
                issues.append(LintIssue(
                    path, "unknown-key", f"unrecognised frontmatter key '{key}'", Severity.WARNING, line=1,
                ))

    if rule.has_frontmatter and not rule.content and rule.source:
        issues.append(LintIssue(path, "empty-body", "rule has no body", Severity.WARNING))

    issues.extend(_content_issues(path, rule.source, config))
    return _filter(issues, config)


def lint_command(command: Command, config: LintConfig | None = None) -> list[LintIssue]:
    """Check a command file: content policy plus a description warning."""
    issues: list[LintIssue] = []
    if not command.description:
        issues.append(LintIssue(
            command.path, "missing-description", "command has no 'description'", Severity.WARNING, line=1,
        ))
    issues.extend(_content_issues(command.path, command.source, config))
    return _filter(issues, config)


def lint_rules(
    rules: Iterable[Rule],
    config: LintConfig | None = None,
    commands: Iterable[Command] = (),
) -> LintReport:
    """Lint every rule (and optionally command) and collect a report."""
    if config is not None:
        for code in config.disabled:
            if code not in CHECK_CODES:
                logger.warning("Ignoring unknown check in lint.disabled: %s", code)
    report = LintReport()
    for rule in rules:
        report.issues.extend(lint_rule(rule, config))
        report.checked += 1
    for command in commands:
        report.issues.extend(lint_command(command, config))
        report.checked += 1
    return report


def _filter(issues: list[LintIssue], config: LintConfig | None) -> list[LintIssue]:
    if config is None or not config.disabled:
        return issues
    disabled = set(config.disabled)
    return [i for i in issues if i.code not in disabled]
