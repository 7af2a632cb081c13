from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)


@dataclass
class RulesConfig:
    dir: str = ".augment/rules"


@dataclass
class CommandsConfig:
    dir: str = ".augment/commands"


@dataclass
class OrchestrationConfig:
    personas_dir: str = ".augment/agents"


@dataclass
class LintConfig:
    disabled: list[str] = field(default_factory=list)
    strict: bool = False
    forbid_env_references: bool = True


@dataclass
class ActivationConfig:
    db_path: str = "data/activation.db"
    use_embeddings: bool = True
    embedding_model: str = "BAAI/bge-small-en-v1.5"
    top_k: int = 5
    min_score: float = 0.25
    vector_weight: float = 0.7
    text_weight: float = 0.3
    similarity_floor: float = 0.55


@dataclass
class WatchConfig:
    debounce_seconds: float = 2.0


@dataclass
class Config:
    rules: RulesConfig = field(default_factory=RulesConfig)
    commands: CommandsConfig = field(default_factory=CommandsConfig)
    orchestration: OrchestrationConfig = field(default_factory=OrchestrationConfig)
    lint: LintConfig = field(default_factory=LintConfig)
    activation: ActivationConfig = field(default_factory=ActivationConfig)
    watch: WatchConfig = field(default_factory=WatchConfig)


_SECTIONS: dict[str, type] = {
    "rules": RulesConfig,
    "commands": CommandsConfig,
    "orchestration": OrchestrationConfig,
    "lint": LintConfig,
    "activation": ActivationConfig,
    "watch": WatchConfig,
}

_ENV_MAP = {
    "RULEKIT_RULES_DIR": ("rules", "dir"),
    "RULEKIT_COMMANDS_DIR": ("commands", "dir"),
    "RULEKIT_PERSONAS_DIR": ("orchestration", "personas_dir"),
    "RULEKIT_ACTIVATION_DB_PATH": ("activation", "db_path"),
    "RULEKIT_EMBEDDING_MODEL": ("activation", "embedding_model"),
}


def _load_dotenv(env_path: str | Path | None = None) -> None:
    """Load a .env file without overriding variables that are already set."""
    path = Path(env_path) if env_path is not None else Path(".env")
    if not path.is_file():
        return
    load_dotenv(path, override=False)


def _apply_env_overrides(raw: dict[str, Any]) -> dict[str, Any]:
    """Override config values with environment variables."""
    for env_var, (section, key) in _ENV_MAP.items():
        value = os.environ.get(env_var)
        if value is None:
            continue
        if not isinstance(raw.get(section), dict):
            raw[section] = {}
        raw[section][key] = value
    return raw


_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _coerce(section: str, key: str, value: Any, default: Any) -> Any:
    """Coerce a YAML or env value to the type of the field default.

    Returns the default (with a warning) when the value can't be coerced.
    """
    if isinstance(default, list):
        if isinstance(value, str):
            return [value]
        if isinstance(value, (list, tuple)):
            return [str(v) for v in value]
    elif isinstance(default, bool):
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in _TRUE | _FALSE:
            return value.strip().lower() in _TRUE
    elif isinstance(default, (int, float)):
        if not isinstance(value, bool):
            try:
                return type(default)(value)
            except (TypeError, ValueError):
                pass
    elif isinstance(default, str):
        if isinstance(value, (str, int, float)) and not isinstance(value, bool):
            return str(value)
    else:
        return value
    logger.warning(
        "Invalid value for %s.%s: %r (expected %s); using default %r",
        section, key, value, type(default).__name__, default,
    )
    return default


def _build_section(cls: type, data: Any) -> Any:
    if not isinstance(data, dict):
        return cls()
    defaults = cls()
    known = {f.name for f in fields(cls)}
    kwargs: dict[str, Any] = {}
    for key, value in data.items():
        if key not in known:
            logger.warning("Ignoring unknown config key: %s.%s", cls.__name__, key)
            continue
        kwargs[key] = _coerce(cls.__name__, key, value, getattr(defaults, key))
    return cls(**kwargs)


def _dict_to_config(raw: dict[str, Any]) -> Config:
    """Convert a raw dict to a Config dataclass."""
    kwargs: dict[str, Any] = {}
    for name, section_cls in _SECTIONS.items():
        if name in raw:
            kwargs[name] = _build_section(section_cls, raw[name])
    for key in raw:
        if key not in _SECTIONS:
            logger.warning("Ignoring unknown config section: %s", key)
    return Config(**kwargs)


def load_config(config_path: str | Path = "config.yaml") -> Config:
    """Load configuration from a YAML file with env var overrides.

    A .env file beside the config is read first. If the config file
    doesn't exist, returns default config.
    """
    config_path = Path(config_path)
    _load_dotenv(config_path.parent / ".env")
    raw: dict[str, Any] = {}

    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            loaded = yaml.safe_load(f)
            if isinstance(loaded, dict):
                raw = loaded

    raw = _apply_env_overrides(raw)
    return _dict_to_config(raw)
