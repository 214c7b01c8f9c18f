"""Database module for SQLite persistence.

Provides:
- Database connection management
- Schema initialization
- Repositories for concepts, review records, questions and LLM usage
"""

from wordseed.db.database import get_db, init_db

__all__ = ["get_db", "init_db"]
