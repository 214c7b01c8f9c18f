"""LLM usage log (one row per backend call)."""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from wordseed.db.database import get_db, to_db_timestamp, utc_now

logger = structlog.get_logger(__name__)


@dataclass
class UsageSummary:
    query_type: str
    calls: int
    input_tokens: int
    output_tokens: int


def log_llm_query(
    query_type: str,
    model: str,
    input_tokens: int | None = None,
    output_tokens: int | None = None,
    latency_ms: int | None = None,
    user_id: str | None = None,
) -> int:
    with get_db() as conn:
        cursor = conn.execute(
            """
            INSERT INTO llm_queries (
                user_id, query_type, model, input_tokens, output_tokens,
                latency_ms, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                user_id,
                query_type,
                model,
                input_tokens,
                output_tokens,
                latency_ms,
                to_db_timestamp(utc_now()),
            ),
        )
        return cursor.lastrowid


def summarize_usage(user_id: str | None = None) -> list[UsageSummary]:
    """Aggregate calls and tokens per query type."""
    query = """
        SELECT query_type,
               COUNT(*) AS calls,
               COALESCE(SUM(input_tokens), 0) AS input_tokens,
               COALESCE(SUM(output_tokens), 0) AS output_tokens
        FROM llm_queries
    """
    params: tuple = ()
    if user_id is not None:
        query += " WHERE user_id = ?"
        params = (user_id,)
    query += " GROUP BY query_type ORDER BY query_type"

    with get_db() as conn:
        rows = conn.execute(query, params).fetchall()

    return [
        UsageSummary(
            query_type=row["query_type"],
            calls=row["calls"],
            input_tokens=row["input_tokens"],
            output_tokens=row["output_tokens"],
        )
        for row in rows
    ]
