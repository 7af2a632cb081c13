from __future__ import annotations

import math
from unittest.mock import MagicMock

import pytest

from rulekit.activation.matcher import Activation, ActivationMatcher, format_activations
from rulekit.activation.schema import ensure_schema, has_fts
from rulekit.config import ActivationConfig
from rulekit.rules.types import Rule, RuleType

requires_fts = pytest.mark.skipif(
    not has_fts(ensure_schema(":memory:")), reason="SQLite built without FTS5"
)


def _rules() -> list[Rule]:
    return [
        Rule(name="baseline", path="", content="", type=RuleType.ALWAYS_APPLY),
        Rule(name="frontend/react", path="", content="", type=RuleType.AGENT_REQUESTED,
             description="React components, hooks and state management"),
        Rule(name="devops/docker", path="", content="", type=RuleType.AGENT_REQUESTED,
             description="Docker images, containers and compose files"),
        Rule(name="backend/postgres", path="", content="", type=RuleType.AGENT_REQUESTED,
             description="PostgreSQL schema migrations and query tuning"),
        Rule(name="no-description", path="", content="", type=RuleType.AGENT_REQUESTED),
        Rule(name="untyped", path="", content="", description="React docker postgres"),
    ]


def _keyword_matcher(**kwargs) -> ActivationMatcher:
    kwargs.setdefault("min_score", 0.0)
    matcher = ActivationMatcher(use_embeddings=False, **kwargs)
    matcher.index(_rules())
    return matcher


def _fake_vector(text: str) -> list[float]:
    lowered = text.lower()
    if "react" in lowered:
        return [1.0, 0.0, 0.0, 0.0]
    if "docker" in lowered:
        return [0.0, 1.0, 0.0, 0.0]
    if "picnic" in lowered:
        # unit vector with cosine 0.55 to every rule, typical of unrelated text
        return [0.55, 0.55, 0.55, math.sqrt(1 - 3 * 0.55 ** 2)]
    return [0.0, 0.0, 1.0, 0.0]


def _embedding_matcher(**kwargs) -> ActivationMatcher:
    matcher = ActivationMatcher(use_embeddings=True, **kwargs)
    model = MagicMock()
    model.embed.side_effect = lambda texts: [_fake_vector(t) for t in texts]
    matcher._embedder._model = model
    matcher.index(_rules())
    return matcher


def _names(activations: list[Activation]) -> list[str]:
    return [a.rule.name for a in activations]


def test_always_apply_rules_are_always_active() -> None:
    matcher = _keyword_matcher()
    result = matcher.match("")
    assert _names(result) == ["baseline"]
    assert result[0].reason == "always"
    assert result[0].score == 1.0
    matcher.close()


@requires_fts
def test_keyword_match_selects_relevant_rule() -> None:
    matcher = _keyword_matcher()
    result = matcher.match("Refactor the React hooks in the dashboard")
    assert _names(result) == ["baseline", "frontend/react"]
    assert result[1].reason == "matched"
    assert result[1].text_score > 0
    matcher.close()


@requires_fts
def test_rules_without_type_or_description_never_match() -> None:
    matcher = _keyword_matcher()
    names = _names(matcher.match("react docker postgres description untyped"))
    assert "untyped" not in names
    assert "no-description" not in names
    matcher.close()


@requires_fts
def test_top_k_limits_matched_rules_only() -> None:
    matcher = _keyword_matcher()
    result = matcher.match("docker compose and postgres schema migrations", top_k=1)
    assert len(result) == 2
    assert result[0].rule.name == "baseline"
    assert result[1].rule.name in {"devops/docker", "backend/postgres"}
    matcher.close()


@requires_fts
def test_min_score_filters_weak_matches() -> None:
    matcher = _keyword_matcher(min_score=0.99)
    assert _names(matcher.match("React hooks")) == ["baseline"]
    matcher.close()


def test_embedding_match_blends_scores() -> None:
    matcher = _embedding_matcher()
    result = matcher.match("Build a React settings page")
    assert _names(result) == ["baseline", "frontend/react"]
    react = result[1]
    assert react.vector_score == pytest.approx(1.0)
    assert react.score >= 0.7
    matcher.close()


def test_embedding_match_without_shared_keywords() -> None:
    matcher = _embedding_matcher()
    result = matcher.match("Ship the container to staging with docker")
    assert "devops/docker" in _names(result)
    assert "frontend/react" not in _names(result)
    matcher.close()


def test_unrelated_task_activates_nothing_with_defaults() -> None:
    matcher = _embedding_matcher()
    assert _names(matcher.match("Plan the company picnic")) == ["baseline"]
    matcher.close()


def test_without_similarity_floor_unrelated_task_activates() -> None:
    matcher = _embedding_matcher(similarity_floor=0.0)
    result = matcher.match("Plan the company picnic")
    assert "frontend/react" in _names(result)
    assert result[1].vector_score == pytest.approx(0.55)
    matcher.close()


def test_index_embeds_only_requestable_rules() -> None:
    matcher = _embedding_matcher()
    assert sorted(matcher._vectors) == ["backend/postgres", "devops/docker", "frontend/react"]
    assert matcher._vectors["devops/docker"] == [0.0, 1.0, 0.0, 0.0]
    matcher.close()


def test_reindex_replaces_rules() -> None:
    matcher = _keyword_matcher()
    matcher.index([Rule(name="only", path="", content="", type=RuleType.ALWAYS_APPLY)])
    assert _names(matcher.match("React hooks")) == ["only"]
    matcher.close()


def test_from_config() -> None:
    config = ActivationConfig(db_path=":memory:", top_k=3, min_score=0.4, use_embeddings=True)
    matcher = ActivationMatcher.from_config(config, use_embeddings=False)
    assert matcher.top_k == 3
    assert matcher.min_score == 0.4
    assert matcher.similarity_floor == config.similarity_floor
    assert matcher.use_embeddings is False
    matcher.close()


def test_format_activations() -> None:
    rules = _rules()
    text = format_activations([
        Activation(rule=rules[0], score=1.0, reason="always"),
        Activation(rule=rules[1], score=0.812, reason="matched"),
    ])
    assert "- baseline (always)" in text
    assert "- frontend/react (0.81): React components" in text
    assert format_activations([]) == "No rules activated."
