from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from rulekit.activation.embeddings import RuleEmbeddings
from rulekit.activation.schema import ensure_schema, has_fts
from rulekit.activation.scoring import combine_scores, cosine_similarity, rescale_similarity, search_keyword
from rulekit.rules.types import Rule

if TYPE_CHECKING:
    from rulekit.config import ActivationConfig

logger = logging.getLogger(__name__)


@dataclass
class Activation:
    """A rule selected for a task, with how it was selected."""

    rule: Rule
    score: float
    reason: str
    vector_score: float = 0.0
    text_score: float = 0.0


class ActivationMatcher:
    """Decides which rules a host would load for a task description.

    always_apply rules are always active. agent_requested rules are scored
    by blending embedding similarity with BM25 over their descriptions.
    Cosine similarity below ``similarity_floor`` counts as no similarity.
    """

    def __init__(
        self,
        db_path: str | Path = ":memory:",
        embedding_model: str = "BAAI/bge-small-en-v1.5",
        use_embeddings: bool = True,
        top_k: int = 5,
        min_score: float = 0.25,
        vector_weight: float = 0.7,
        text_weight: float = 0.3,
        similarity_floor: float = 0.55,
    ) -> None:
        self.use_embeddings = use_embeddings
        self.top_k = top_k
        self.min_score = min_score
        self.vector_weight = vector_weight
        self.text_weight = text_weight
        self.similarity_floor = similarity_floor

        self._conn = ensure_schema(db_path)
        self._embedder = RuleEmbeddings(model_name=embedding_model, db=self._conn)
        self._always: list[Rule] = []
        self._candidates: dict[str, Rule] = {}
        self._vectors: dict[str, list[float]] = {}
        if not has_fts(self._conn):
            logger.warning("SQLite FTS5 unavailable; keyword scoring disabled")

    @classmethod
    def from_config(cls, config: ActivationConfig, use_embeddings: bool | None = None) -> ActivationMatcher:
        return cls(
            db_path=config.db_path,
            embedding_model=config.embedding_model,
            use_embeddings=config.use_embeddings if use_embeddings is None else use_embeddings,
            top_k=config.top_k,
            min_score=config.min_score,
            vector_weight=config.vector_weight,
            text_weight=config.text_weight,
            similarity_floor=config.similarity_floor,
        )

    def index(self, rules: list[Rule]) -> None:
        """Replace the indexed rule set."""
        self._always = [r for r in rules if r.always_applies]
        self._candidates = {r.name: r for r in rules if r.activatable and not r.always_applies}

        if has_fts(self._conn):
            self._conn.execute("DELETE FROM rules_fts")
            self._conn.executemany(
                "INSERT INTO rules_fts (description, name) VALUES (?, ?)",
                [(r.description, r.name) for r in self._candidates.values()],
            )
            self._conn.commit()

        self._vectors = {}
        if self.use_embeddings:
            self._vectors = self._embedder.sync(
                {name: rule.description for name, rule in self._candidates.items()}
            )

        logger.debug(
            "Indexed %d always-applied and %d requestable rules",
            len(self._always), len(self._candidates),
        )

    def match(self, task: str, top_k: int | None = None) -> list[Activation]:
        """Return the rules activated for ``task``, always-applied first."""
        k = self.top_k if top_k is None else top_k
        activations = [Activation(rule=r, score=1.0, reason="always") for r in self._always]
        if not task.strip() or not self._candidates:
            return activations

        text_scores = search_keyword(self._conn, task, top_k=max(len(self._candidates), 1))
        task_vector = self._embedder.embed_task(task) if self._vectors else None

        scored: list[Activation] = []
        for name, rule in self._candidates.items():
            vector_score = 0.0
            if task_vector is not None and name in self._vectors:
                vector_score = rescale_similarity(
                    cosine_similarity(task_vector, self._vectors[name]), self.similarity_floor
                )
            text_score = text_scores.get(name, 0.0)
            score = combine_scores(
                vector_score,
                text_score,
                vector_weight=self.vector_weight,
                text_weight=self.text_weight,
                use_vectors=task_vector is not None,
            )
            if score <= 0 or score < self.min_score:
                continue
            scored.append(Activation(
                rule=rule,
                score=score,
                reason="matched",
                vector_score=vector_score,
                text_score=text_score,
            ))

        scored.sort(key=lambda a: (-a.score, a.rule.name))
        return activations + scored[:k]

    def close(self) -> None:
        self._conn.close()


def format_activations(activations: list[Activation]) -> str:
    if not activations:
        return "No rules activated."
    lines = []
    for a in activations:
        if a.reason == "always":
            lines.append(f"- {a.rule.name} (always)")
        else:
            lines.append(f"- {a.rule.name} ({a.score:.2f}): {a.rule.description}")
    return "\n".join(lines)
