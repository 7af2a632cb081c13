from __future__ import annotations

import os
from pathlib import Path

import pytest
import yaml

from rulekit.config import Config, _load_dotenv, load_config


def _write_yaml(path: Path, data: dict) -> None:
    with open(path, "w") as f:
        yaml.dump(data, f)


@pytest.fixture(autouse=True)
def _clear_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for var in (
        "RULEKIT_RULES_DIR",
        "RULEKIT_COMMANDS_DIR",
        "RULEKIT_PERSONAS_DIR",
        "RULEKIT_ACTIVATION_DB_PATH",
        "RULEKIT_EMBEDDING_MODEL",
    ):
        monkeypatch.delenv(var, raising=False)


class TestLoadConfig:
    def test_defaults_when_no_file(self, tmp_path: Path) -> None:
        cfg = load_config(tmp_path / "nonexistent.yaml")
        assert isinstance(cfg, Config)
        assert cfg.rules.dir == ".augment/rules"
        assert cfg.commands.dir == ".augment/commands"
        assert cfg.orchestration.personas_dir == ".augment/agents"
        assert cfg.lint.strict is False
        assert cfg.lint.forbid_env_references is True
        assert cfg.activation.top_k == 5
        assert cfg.activation.use_embeddings is True

    def test_loads_from_file(self, tmp_path: Path) -> None:
        config_file = tmp_path / "config.yaml"
        _write_yaml(config_file, {
            "rules": {"dir": "docs/rules"},
            "lint": {"disabled": ["unknown-key"], "strict": True},
            "activation": {"min_score": 0.5, "use_embeddings": False},
        })
        cfg = load_config(config_file)
        assert cfg.rules.dir == "docs/rules"
        assert cfg.lint.disabled == ["unknown-key"]
        assert cfg.lint.strict is True
        assert cfg.activation.min_score == 0.5
        assert cfg.activation.use_embeddings is False
        # Defaults for unspecified fields
        assert cfg.activation.vector_weight == 0.7
        assert cfg.watch.debounce_seconds == 2.0

    def test_unknown_keys_ignored(self, tmp_path: Path) -> None:
        config_file = tmp_path / "config.yaml"
        _write_yaml(config_file, {
            "rules": {"dir": "r", "glob": "*.md"},
            "telemetry": {"enabled": True},
        })
        cfg = load_config(config_file)
        assert cfg.rules.dir == "r"

    def test_env_var_overrides(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        config_file = tmp_path / "config.yaml"
        _write_yaml(config_file, {"rules": {"dir": "original"}})
        monkeypatch.setenv("RULEKIT_RULES_DIR", "/override/rules")
        monkeypatch.setenv("RULEKIT_EMBEDDING_MODEL", "custom-model")
        cfg = load_config(config_file)
        assert cfg.rules.dir == "/override/rules"
        assert cfg.activation.embedding_model == "custom-model"

    def test_dotenv_beside_config(self, tmp_path: Path) -> None:
        (tmp_path / ".env").write_text("RULEKIT_PERSONAS_DIR=team/agents\n")
        cfg = load_config(tmp_path / "config.yaml")
        assert cfg.orchestration.personas_dir == "team/agents"
        os.environ.pop("RULEKIT_PERSONAS_DIR", None)

    def test_empty_yaml_file(self, tmp_path: Path) -> None:
        config_file = tmp_path / "config.yaml"
        config_file.write_text("")
        cfg = load_config(config_file)
        assert isinstance(cfg, Config)
        assert cfg.rules.dir == ".augment/rules"


def test_load_dotenv(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text(
        '# comment\n'
        'RULEKIT_TEST_A=plain\n'
        'RULEKIT_TEST_B="quoted value"\n'
        "export RULEKIT_TEST_C='single quoted'\n"
    )
    for var in ("RULEKIT_TEST_A", "RULEKIT_TEST_B", "RULEKIT_TEST_C"):
        monkeypatch.delenv(var, raising=False)

    _load_dotenv(env_file)

    assert os.environ["RULEKIT_TEST_A"] == "plain"
    assert os.environ["RULEKIT_TEST_B"] == "quoted value"
    assert os.environ["RULEKIT_TEST_C"] == "single quoted"
    for var in ("RULEKIT_TEST_A", "RULEKIT_TEST_B", "RULEKIT_TEST_C"):
        monkeypatch.delenv(var, raising=False)


def test_load_dotenv_does_not_override(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text("RULEKIT_TEST_KEY=from_file\n")
    monkeypatch.setenv("RULEKIT_TEST_KEY", "from_env")

    _load_dotenv(env_file)

    assert os.environ["RULEKIT_TEST_KEY"] == "from_env"


def test_scalar_disabled_becomes_list(tmp_path: Path) -> None:
    config_file = tmp_path / "config.yaml"
    config_file.write_text("lint:\n  disabled: missing-type\n")
    cfg = load_config(config_file)
    assert cfg.lint.disabled == ["missing-type"]


def test_values_coerced_to_field_types(tmp_path: Path) -> None:
    config_file = tmp_path / "config.yaml"
    _write_yaml(config_file, {
        "lint": {"strict": "yes"},
        "activation": {"min_score": "0.5", "top_k": "3", "use_embeddings": "false"},
        "watch": {"debounce_seconds": 1},
    })
    cfg = load_config(config_file)
    assert cfg.lint.strict is True
    assert cfg.activation.min_score == 0.5
    assert cfg.activation.top_k == 3
    assert cfg.activation.use_embeddings is False
    assert isinstance(cfg.watch.debounce_seconds, float)


def test_invalid_value_keeps_default(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    config_file = tmp_path / "config.yaml"
    _write_yaml(config_file, {"activation": {"top_k": "many"}})
    cfg = load_config(config_file)
    assert cfg.activation.top_k == 5
    assert "top_k" in caplog.text
