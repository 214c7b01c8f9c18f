"""SQLite database connection and schema management.

Provides connection management and schema initialization for the
practice engine: concepts, review records, generated questions and
LLM usage logs.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Generator

import structlog

logger = structlog.get_logger(__name__)

# Default database location
DEFAULT_DB_PATH = Path("db/wordseed.db")

# Fixed-width UTC format so stored timestamps compare correctly as text
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

# Current database (module-level for simplicity in CLI context)
_db_path: Path | None = None


def to_db_timestamp(value: datetime | None) -> str | None:
    """Serialize a datetime as a sortable UTC string."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def from_db_timestamp(value: str | None) -> datetime | None:
    """Parse a stored timestamp back into an aware UTC datetime."""
    if value is None:
        return None
    return datetime.strptime(value, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def init_db(db_path: Path | None = None) -> None:
    """Initialize database with schema.

    Creates the database file and all required tables if they don't exist.

    Args:
        db_path: Path to database file. Defaults to db/wordseed.db
    """
    global _db_path
    _db_path = db_path or DEFAULT_DB_PATH

    _db_path.parent.mkdir(parents=True, exist_ok=True)

    with get_db() as conn:
        _create_schema(conn)

    logger.info("database.initialized", path=str(_db_path))


def get_db_path() -> Path:
    return _db_path or DEFAULT_DB_PATH


@contextmanager
def get_db() -> Generator[sqlite3.Connection, None, None]:
    """Get database connection as context manager.

    Commits on success, rolls back on error.

    Yields:
        SQLite connection with row factory set to sqlite3.Row

    Example:
        with get_db() as conn:
            rows = conn.execute("SELECT * FROM concepts").fetchall()
    """
    db_path = get_db_path()
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path, timeout=30)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")

    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def _create_schema(conn: sqlite3.Connection) -> None:
    """Create database schema.

    Uses IF NOT EXISTS for idempotency.
    """
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS concepts (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id TEXT NOT NULL,
            language TEXT NOT NULL DEFAULT 'zh',
            word TEXT NOT NULL,
            pinyin TEXT,
            meaning TEXT NOT NULL,
            part_of_speech TEXT NOT NULL DEFAULT 'other',
            explanations TEXT NOT NULL DEFAULT '[]',
            understanding INTEGER NOT NULL DEFAULT 0
                CHECK(understanding BETWEEN 0 AND 100),
            paused INTEGER NOT NULL DEFAULT 0,
            explanation_quality INTEGER
                CHECK(explanation_quality IS NULL OR explanation_quality BETWEEN 1 AND 5),
            desired_words TEXT NOT NULL DEFAULT '[]',
            created_at TEXT NOT NULL,
            UNIQUE(user_id, language, word)
        );

        -- One record per (user, concept, question_type)
        CREATE TABLE IF NOT EXISTS review_records (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            concept_id INTEGER NOT NULL REFERENCES concepts(id) ON DELETE CASCADE,
            user_id TEXT NOT NULL,
            question_type TEXT NOT NULL
                CHECK(question_type IN ('pinyin', 'yes_no', 'multiple_choice')),
            tier INTEGER NOT NULL DEFAULT 0 CHECK(tier BETWEEN 0 AND 7),
            streak INTEGER NOT NULL DEFAULT 0,
            lapses INTEGER NOT NULL DEFAULT 0,
            next_review TEXT,
            version INTEGER NOT NULL DEFAULT 1,
            updated_at TEXT NOT NULL,
            UNIQUE(user_id, concept_id, question_type),
            CHECK((tier < 7 AND next_review IS NOT NULL) OR (tier = 7 AND next_review IS NULL))
        );

        CREATE TABLE IF NOT EXISTS questions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            concept_id INTEGER NOT NULL REFERENCES concepts(id) ON DELETE CASCADE,
            user_id TEXT NOT NULL,
            question_type TEXT NOT NULL
                CHECK(question_type IN ('yes_no', 'multiple_choice', 'sentence')),
            question_text TEXT NOT NULL,
            correct_answer TEXT,
            options TEXT NOT NULL DEFAULT '[]',
            explanation TEXT NOT NULL DEFAULT '',
            used_at TEXT,
            created_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS llm_queries (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id TEXT,
            query_type TEXT NOT NULL,
            model TEXT NOT NULL,
            input_tokens INTEGER,
            output_tokens INTEGER,
            latency_ms INTEGER,
            created_at TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_concepts_scope ON concepts(user_id, language);
        CREATE INDEX IF NOT EXISTS idx_review_due ON review_records(user_id, next_review);
        CREATE INDEX IF NOT EXISTS idx_review_tier ON review_records(user_id, tier);
        CREATE INDEX IF NOT EXISTS idx_questions_unused
            ON questions(concept_id, question_type, used_at);
        """
    )
