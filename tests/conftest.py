"""Shared fixtures for wordseed tests."""

import json
from datetime import datetime, timezone
from typing import Any
from unittest.mock import MagicMock

import pytest

from wordseed.config.app_config import clear_config_cache
from wordseed.core.practice import reset_practice_engine
from wordseed.core.reference_data import reset_hsk_registry
from wordseed.db import concepts_repository, database
from wordseed.db.concepts_repository import ConceptRecord, Scope
from wordseed.db.database import init_db
from wordseed.prompts.registry import clear_cache


@pytest.fixture(autouse=True)
def reset_module_state():
    """Reset module-level caches and singletons around every test."""
    clear_config_cache()
    clear_cache()
    reset_practice_engine()
    reset_hsk_registry()
    yield
    clear_config_cache()
    reset_practice_engine()
    reset_hsk_registry()
    database._db_path = None


@pytest.fixture
def db(tmp_path):
    """Fresh SQLite database in a temp directory."""
    path = tmp_path / "wordseed.db"
    init_db(path)
    return path


@pytest.fixture
def now() -> datetime:
    return datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def scope() -> Scope:
    return Scope(user_id="alice", language="zh")


@pytest.fixture
def known_words() -> dict[str, int]:
    """Chinese words the learner already knows, with understanding."""
    return {
        "我": 100,
        "你": 100,
        "是": 100,
        "吗": 100,
        "有": 90,
        "一": 100,
        "只": 80,
        "喜欢": 70,
        "动物": 60,
        "不": 100,
    }


@pytest.fixture
def add_concept(db, scope):
    """Factory inserting a concept into the test scope."""

    def _add(word: str, meaning: str = "-", **kwargs: Any) -> ConceptRecord:
        target = kwargs.pop("scope", scope)
        return concepts_repository.insert_concept(target, word=word, meaning=meaning, **kwargs)

    return _add


@pytest.fixture
def seeded_vocabulary(add_concept, known_words):
    """Insert the known words at their understanding level."""
    for word, understanding in known_words.items():
        add_concept(word, understanding=understanding)
    return known_words


@pytest.fixture
def make_backend():
    """Build a mock TextBackend returning the given responses in order.

    Dicts are serialized to JSON; strings are returned as-is; exception
    instances are raised.
    """

    def _make(*responses: Any) -> MagicMock:
        backend = MagicMock()
        backend.generate.side_effect = [
            json.dumps(r, ensure_ascii=False) if isinstance(r, dict) else r for r in responses
        ]
        return backend

    return _make


@pytest.fixture
def yes_no_response() -> dict[str, Any]:
    return {"question": "猫 是 动物 吗？", "answer": True, "explanation": "猫 是 动物。"}


@pytest.fixture
def multiple_choice_response() -> dict[str, Any]:
    return {"sentence": "我 有 一 只 ____。", "options": ["猫", "狗", "鸟"], "correct_index": 0}
