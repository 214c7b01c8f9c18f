"""Known-vocabulary snapshots.

The practice engine never writes vocabulary directly: it reads a
KnownVocabularySet per scope and hands understanding changes back
through the provider.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Protocol

from wordseed.db import concepts_repository
from wordseed.db.concepts_repository import ConceptRecord, Scope


@dataclass(frozen=True)
class KnownVocabularySet:
    """Words a learner knows, with per-word understanding (0-100)."""

    words: frozenset[str] = frozenset()
    understanding: Mapping[str, int] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_mapping(cls, understanding: Mapping[str, int]) -> KnownVocabularySet:
        return cls(
            words=frozenset(understanding),
            understanding=MappingProxyType(dict(understanding)),
        )

    def __contains__(self, word: object) -> bool:
        return word in self.words

    def __len__(self) -> int:
        return len(self.words)

    def sample(self, limit: int = 50) -> list[str]:
        """Best-understood words first, for prompt context."""
        ranked = sorted(self.words, key=lambda w: (-self.understanding.get(w, 0), w))
        return ranked[:limit]


class VocabularyProvider(Protocol):
    def known_vocabulary(self, scope: Scope) -> KnownVocabularySet: ...

    def set_understanding(self, concept_id: int, value: int) -> ConceptRecord: ...


class SQLiteVocabulary:
    """Vocabulary provider backed by the concepts table."""

    def known_vocabulary(self, scope: Scope) -> KnownVocabularySet:
        return KnownVocabularySet.from_mapping(
            concepts_repository.known_words_with_understanding(scope)
        )

    def set_understanding(self, concept_id: int, value: int) -> ConceptRecord:
        return concepts_repository.set_understanding(concept_id, value)
