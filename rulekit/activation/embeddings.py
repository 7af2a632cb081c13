from __future__ import annotations

import hashlib
import logging
import sqlite3
import struct
import time
from typing import Any

logger = logging.getLogger(__name__)


def _pack(vector: list[float]) -> bytes:
    return struct.pack(f"{len(vector)}f", *vector)


def _unpack(blob: bytes) -> list[float]:
    return list(struct.unpack(f"{len(blob) // 4}f", blob))


def description_hash(description: str) -> str:
    return hashlib.sha256(description.encode()).hexdigest()


class RuleEmbeddings:
    """Embeds rule descriptions with fastembed, one stored vector per rule.

    Vectors are kept in the ``rule_embeddings`` table keyed by rule name and
    model, together with a hash of the description they were computed from.
    ``sync`` re-embeds only rules whose description changed and drops rows
    for rules that no longer exist. Task text is embedded on demand and
    never stored.
    """

    def __init__(
        self,
        model_name: str = "BAAI/bge-small-en-v1.5",
        db: sqlite3.Connection | None = None,
    ) -> None:
        self.model_name = model_name
        self._db = db
        self._model: Any = None

    def _get_model(self) -> Any:
        if self._model is None:
            from fastembed import TextEmbedding  # type: ignore[import-untyped]

            logger.info("Loading embedding model %s", self.model_name)
            self._model = TextEmbedding(model_name=self.model_name)
        return self._model

    def _compute(self, texts: list[str]) -> list[list[float]]:
        vectors = [[float(x) for x in emb] for emb in self._get_model().embed(texts)]
        if len(vectors) != len(texts):
            raise RuntimeError(
                f"embedding model returned {len(vectors)} vectors for {len(texts)} texts"
            )
        return vectors

    def embed_task(self, text: str) -> list[float]:
        """Embed a task description."""
        return self._compute([text])[0]

    def sync(self, descriptions: dict[str, str]) -> dict[str, list[float]]:
        """Return a vector for every rule in ``descriptions`` (name -> text).

        Stored vectors are reused while the description hash matches.
        Rules missing from ``descriptions`` are pruned from the store.
        """
        stored = self._load()
        vectors: dict[str, list[float]] = {}
        stale: list[str] = []
        for name, description in descriptions.items():
            hit = stored.get(name)
            if hit is not None and hit[0] == description_hash(description):
                vectors[name] = hit[1]
            else:
                stale.append(name)

        if stale:
            computed = self._compute([descriptions[n] for n in stale])
            for name, vector in zip(stale, computed):
                vectors[name] = vector
                self._store(name, descriptions[name], vector)
            logger.debug("Embedded %d rule descriptions", len(stale))

        removed = [name for name in stored if name not in descriptions]
        if removed and self._db is not None:
            self._db.executemany(
                "DELETE FROM rule_embeddings WHERE name = ? AND model = ?",
                [(name, self.model_name) for name in removed],
            )
            logger.debug("Pruned %d stale rule embeddings", len(removed))

        if self._db is not None:
            self._db.commit()
        return vectors

    def _load(self) -> dict[str, tuple[str, list[float]]]:
        if self._db is None:
            return {}
        rows = self._db.execute(
            "SELECT name, hash, embedding FROM rule_embeddings WHERE model = ?",
            (self.model_name,),
        ).fetchall()
        return {row[0]: (row[1], _unpack(row[2])) for row in rows}

    def _store(self, name: str, description: str, vector: list[float]) -> None:
        if self._db is None:
            return
        self._db.execute(
            """INSERT OR REPLACE INTO rule_embeddings (name, model, hash, embedding, updated_at)
               VALUES (?, ?, ?, ?, ?)""",
            (name, self.model_name, description_hash(description), _pack(vector), int(time.time())),
        )
