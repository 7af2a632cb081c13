from __future__ import annotations

import math
import re
import sqlite3

STOP_WORDS = frozenset("""
a an and are as at be but by can do for from has have how i if in into is it its
me my of on or our please so that the their them then there these this to up us
use using was we what when where which while who why will with you your
""".split())


def search_keyword(
    conn: sqlite3.Connection,
    query_text: str,
    top_k: int = 20,
) -> dict[str, float]:
    """Score rule descriptions against a task by BM25 using FTS5.

    Returns a mapping of rule name to a 0-1 score for every rule that
    shares at least one term with the task.
    """
    fts_query = _build_fts_query(query_text)
    if not fts_query:
        return {}

    try:
        rows = conn.execute(
            """
            SELECT name, rank
            FROM rules_fts
            WHERE rules_fts MATCH ?
            ORDER BY rank
            LIMIT ?
            """,
            (fts_query, top_k),
        ).fetchall()
    except sqlite3.OperationalError:
        # FTS5 not available
        return {}

    return {row[0]: _bm25_rank_to_score(float(row[1])) for row in rows}


def cosine_similarity(a: list[float], b: list[float]) -> float:
    """Cosine similarity clamped to 0-1; zero vectors score 0."""
    if not a or not b or len(a) != len(b):
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    if norm == 0:
        return 0.0
    return max(0.0, min(1.0, dot / norm))


def rescale_similarity(cosine: float, floor: float) -> float:
    """Map cosine in [floor, 1] onto [0, 1]; anything at or below floor is 0.

    Sentence embeddings rarely score unrelated text near zero, so the
    floor is the similarity two unrelated descriptions typically share.
    """
    if floor <= 0:
        return cosine
    if floor >= 1 or cosine <= floor:
        return 0.0
    return (cosine - floor) / (1.0 - floor)


def combine_scores(
    vector_score: float,
    text_score: float,
    vector_weight: float = 0.7,
    text_weight: float = 0.3,
    use_vectors: bool = True,
) -> float:
    """Weighted hybrid score. Keyword score alone when vectors are off."""
    if not use_vectors:
        return text_score
    return vector_weight * vector_score + text_weight * text_score


def _build_fts_query(raw: str) -> str | None:
    """Convert free task text to an FTS5 OR query without stop words."""
    seen: list[str] = []
    for token in re.findall(r"[A-Za-z0-9_]+", raw.lower()):
        if len(token) < 2 or token in STOP_WORDS or token in seen:
            continue
        seen.append(token)
    if not seen:
        return None
    return " OR ".join(f'"{t}"' for t in seen)


def _bm25_rank_to_score(rank: float) -> float:
    """Convert FTS5 rank (negative, lower = better) to a 0-1 score."""
    normalized = max(0.0, -rank) if rank < 0 else 0.0
    return 1.0 / (1.0 + 1.0 / (normalized + 0.001))
