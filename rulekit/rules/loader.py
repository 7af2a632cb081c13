from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

import yaml

from rulekit.rules.types import Rule, RuleType

logger = logging.getLogger(__name__)

FENCE = "---"


@dataclass
class Frontmatter:
    """Result of splitting a document into header metadata and body."""

    metadata: dict[str, Any] = field(default_factory=dict)
    body: str = ""
    present: bool = False
    error: str | None = None
    body_line: int = 1


def parse_frontmatter(text: str) -> Frontmatter:
    """Parse the frontmatter block at the top of a Markdown document.

    The block is read as YAML first. Hand-written headers often carry
    unquoted colons in the description, which YAML rejects, so a plain
    ``key: value`` reading is used as a fallback and the YAML error is kept
    on the result.
    """
    text = text.lstrip("\ufeff")
    lines = text.split("\n")
    if not lines or lines[0].strip() != FENCE:
        return Frontmatter(body=text)

    closing = None
    for i in range(1, len(lines)):
        if lines[i].strip() == FENCE:
            closing = i
            break
    if closing is None:
        return Frontmatter(body=text, present=True, error="frontmatter block is not closed")

    block = "\n".join(lines[1:closing])
    body = "\n".join(lines[closing + 1:])
    result = Frontmatter(body=body, present=True, body_line=closing + 2)

    try:
        loaded = yaml.safe_load(block) if block.strip() else {}
    except yaml.YAMLError as exc:
        mark = getattr(exc, "problem_mark", None)
        where = f" (line {mark.line + 2})" if mark is not None else ""
        result.error = f"frontmatter is not valid YAML{where}: {getattr(exc, 'problem', exc)}"
        result.metadata = _parse_key_values(block)
        return result

    if loaded is None:
        loaded = {}
    if not isinstance(loaded, dict):
        result.error = f"frontmatter must be a mapping, got {type(loaded).__name__}"
        return result

    result.metadata = {str(k): v for k, v in loaded.items()}
    return result


def _parse_key_values(block: str) -> dict[str, Any]:
    """Minimal top-level ``key: value`` reader."""
    metadata: dict[str, Any] = {}
    for line in block.split("\n"):
        if not line.strip() or line.lstrip().startswith("#"):
            continue
        if line[0].isspace() or ":" not in line:
            continue
        key, _, value = line.partition(":")
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
            value = value[1:-1]
        metadata[key.strip()] = value
    return metadata


def load_rule(path: str | Path, rules_dir: str | Path | None = None) -> Rule:
    """Load a single rule document.

    The rule name is the path relative to ``rules_dir`` without the
    ``.md`` suffix, or the file stem when no directory is given.
    """
    path = Path(path)
    if rules_dir is not None:
        name = path.relative_to(rules_dir).with_suffix("").as_posix()
    else:
        name = path.stem

    try:
        text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError:
        logger.warning("Rule %s is not valid UTF-8", path)
        return Rule(
            name=name,
            path=str(path),
            content="",
            frontmatter_error="file is not valid UTF-8",
        )

    fm = parse_frontmatter(text)
    if fm.error and fm.metadata:
        logger.debug("Rule %s: %s; using key/value fallback", path, fm.error)

    raw_type = fm.metadata.get("type")
    description = fm.metadata.get("description")
    if description is None:
        description = ""
    elif not isinstance(description, str):
        description = str(description)

    return Rule(
        name=name,
        path=str(path),
        content=fm.body.strip(),
        type=RuleType.parse(raw_type),
        raw_type=None if raw_type is None else str(raw_type),
        description=" ".join(description.split()),
        metadata=fm.metadata,
        has_frontmatter=fm.present,
        frontmatter_error=fm.error,
        body_line=fm.body_line,
        source=text,
    )


def discover_rules(rules_dir: str | Path) -> list[Rule]:
    """Scan the rules directory recursively for Markdown rule documents."""
    rules_dir = Path(rules_dir)
    if not rules_dir.is_dir():
        return []

    rules = [load_rule(p, rules_dir) for p in sorted(rules_dir.rglob("*.md")) if p.is_file()]
    logger.debug("Discovered %d rules in %s", len(rules), rules_dir)
    return rules


def format_rules_list(rules: list[Rule]) -> str:
    """Format the loadable rules as Markdown for a system prompt."""
    always = [r for r in rules if r.always_applies]
    requested = [r for r in rules if r.type is RuleType.AGENT_REQUESTED]
    if not always and not requested:
        return ""

    lines: list[str] = []
    if always:
        lines.append("## Always Applied\n")
        for r in always:
            lines.append(f"- **{r.name}**" + (f": {r.description}" if r.description else ""))
    if requested:
        if lines:
            lines.append("")
        lines.append("## Available Rules\n")
        for r in requested:
            lines.append(f"- **{r.name}**: {r.description or '(no description)'}")
    return "\n".join(lines)


def find_rule(rules: list[Rule], name: str) -> Rule | None:
    """Find a rule by name, accepting a trailing ``.md``."""
    if name.endswith(".md"):
        name = name[:-3]
    for r in rules:
        if r.name == name:
            return r
    return None


def get_rule_content(rules: list[Rule], name: str) -> str | None:
    """Return the Markdown body of a rule by name."""
    rule = find_rule(rules, name)
    return rule.content if rule is not None else None


class RuleWatcher:
    """Watches the rules directory for changes and re-runs discovery.

    The first change runs discovery at once. Changes arriving within
    ``debounce_seconds`` of that run are folded into one more run at the
    end of the window.
    """

    def __init__(
        self,
        rules_dir: str | Path,
        on_update: Callable[[list[Rule]], None] | None = None,
        debounce_seconds: float = 2.0,
    ) -> None:
        self.rules_dir = Path(rules_dir)
        self.on_update = on_update
        self.debounce_seconds = debounce_seconds
        self._observer: Any = None
        self._last_sync = 0.0
        self._timer: threading.Timer | None = None
        self._lock = threading.Lock()

    def handle_event(self, src_path: str) -> bool:
        """Re-run discovery for a filesystem event. Returns True if it ran."""
        if not str(src_path).endswith(".md"):
            return False
        with self._lock:
            now = time.time()
            remaining = self.debounce_seconds - (now - self._last_sync)
            if remaining > 0:
                if self._timer is None:
                    self._timer = threading.Timer(remaining, self._flush)
                    self._timer.daemon = True
                    self._timer.start()
                return False
            self._last_sync = now
        self._sync()
        return True

    def _flush(self) -> None:
        with self._lock:
            self._timer = None
            self._last_sync = time.time()
        self._sync()

    def _sync(self) -> None:
        rules = discover_rules(self.rules_dir)
        logger.info("Rules changed, %d rules loaded", len(rules))
        if self.on_update:
            self.on_update(rules)

    def start(self) -> None:
        """Start watching for rule file changes."""
        from watchdog.events import FileSystemEventHandler
        from watchdog.observers import Observer

        watcher = self

        class _Handler(FileSystemEventHandler):
            def on_any_event(self, event: Any) -> None:
                if event.is_directory:
                    return
                watcher.handle_event(event.src_path)

        self.rules_dir.mkdir(parents=True, exist_ok=True)
        observer = Observer()
        observer.schedule(_Handler(), str(self.rules_dir), recursive=True)
        observer.daemon = True
        observer.start()
        self._observer = observer

    def stop(self) -> None:
        """Stop the file watcher and drop any pending re-run."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    @property
    def running(self) -> bool:
        return self._observer is not None
