"""Tests for review records and the version check on writes."""

from datetime import timedelta

import pytest

from wordseed.core.srs import SRSInvariantError, SRSState, transition
from wordseed.db import concepts_repository, review_repository
from wordseed.db.review_repository import StaleRecordError


@pytest.fixture
def cat(add_concept):
    return add_concept("猫", "cat", pinyin="māo")


class TestCreateRecords:
    """Tests for creating review tracks."""

    def test_creates_tier_zero_tracks(self, cat, now):
        records = review_repository.create_records(
            cat.id, cat.user_id, ["pinyin", "yes_no", "multiple_choice"], now
        )

        assert [r.question_type for r in records] == ["pinyin", "yes_no", "multiple_choice"]
        for record in records:
            assert record.tier == 0
            assert record.version == 1
            assert record.next_review == now + timedelta(minutes=10)

    def test_second_call_leaves_existing_tracks(self, cat, now):
        first = review_repository.create_records(cat.id, cat.user_id, ["yes_no"], now)
        review_repository.save_transition(first[0], transition(first[0].state, True, now), now)

        records = review_repository.create_records(
            cat.id, cat.user_id, ["yes_no", "multiple_choice"], now + timedelta(days=1)
        )

        assert len(records) == 2
        yes_no = review_repository.get_record_for(cat.id, "yes_no")
        assert yes_no.tier == 1
        assert yes_no.version == 2


class TestSaveTransition:
    """Writes succeed only against the version they were computed from."""

    def test_bumps_version(self, cat, now):
        record = review_repository.create_records(cat.id, cat.user_id, ["yes_no"], now)[0]

        stored = review_repository.save_transition(record, transition(record.state, True, now), now)

        assert stored.version == 2
        assert stored.tier == 1
        assert stored.streak == 1
        assert stored.next_review == now + timedelta(hours=1)

    def test_stale_copy_rejected(self, cat, now):
        record = review_repository.create_records(cat.id, cat.user_id, ["yes_no"], now)[0]
        review_repository.save_transition(record, transition(record.state, True, now), now)

        with pytest.raises(StaleRecordError) as exc_info:
            review_repository.save_transition(record, transition(record.state, False, now), now)

        assert exc_info.value.expected_version == 1
        assert exc_info.value.actual_version == 2
        assert review_repository.get_record(record.id).tier == 1

    def test_deleted_record_rejected(self, cat, now):
        record = review_repository.create_records(cat.id, cat.user_id, ["yes_no"], now)[0]
        review_repository.delete_record(record.id)

        with pytest.raises(StaleRecordError) as exc_info:
            review_repository.save_transition(record, transition(record.state, True, now), now)

        assert exc_info.value.actual_version is None

    def test_invalid_state_rejected_before_write(self, cat, now):
        record = review_repository.create_records(cat.id, cat.user_id, ["yes_no"], now)[0]

        with pytest.raises(SRSInvariantError):
            review_repository.save_transition(record, SRSState(tier=7, next_review=now), now)

        assert review_repository.get_record(record.id).version == 1

    def test_graduation_clears_next_review(self, cat, now):
        record = review_repository.create_records(cat.id, cat.user_id, ["yes_no"], now)[0]

        stored = review_repository.save_transition(
            record, SRSState(tier=7, streak=7, lapses=0, next_review=None), now
        )

        assert stored.graduated
        assert stored.next_review is None


class TestQueries:
    """Tests for due and first-encounter queries."""

    def test_find_due_respects_time(self, cat, scope, now):
        review_repository.create_records(cat.id, cat.user_id, ["yes_no"], now)

        assert review_repository.find_due(scope, now + timedelta(minutes=9)) == []
        due = review_repository.find_due(scope, now + timedelta(minutes=10))
        assert len(due) == 1

    def test_find_due_skips_paused(self, cat, scope, now):
        review_repository.create_records(cat.id, cat.user_id, ["yes_no"], now)
        concepts_repository.set_paused(cat.id, True)

        assert review_repository.find_due(scope, now + timedelta(days=1)) == []

    def test_find_first_encounter_oldest_first(self, add_concept, scope, now):
        first = add_concept("猫", created_at=now - timedelta(days=2))
        add_concept("狗", created_at=now - timedelta(days=1))

        assert review_repository.find_first_encounter(scope).id == first.id

    def test_first_encounter_skips_known_words(self, add_concept, scope):
        add_concept("我", understanding=100)
        assert review_repository.find_first_encounter(scope) is None
