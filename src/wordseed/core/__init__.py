"""Core practice logic.

Modules:
- srs: tier state machine
- language: per-language validation rules and pinyin matching
- vocabulary: known-vocabulary snapshots
- reference_data: HSK level registry
- content_generator: vocabulary-constrained question and explanation generation
- sentence_evaluator: critique of learner sentences
- scheduler: next practice item selection
- answer_pipeline: grading, SRS updates and feedback
- pregeneration: background question stocking
- practice: engine facade
"""

__all__ = [
    "srs",
    "language",
    "vocabulary",
    "reference_data",
    "content_generator",
    "sentence_evaluator",
    "scheduler",
    "answer_pipeline",
    "pregeneration",
    "practice",
]
