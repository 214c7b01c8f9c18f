"""Spaced-repetition tier state machine.

Each (concept, question type) pair is tracked on a ladder of discrete
tiers that map to review intervals:

- Tier 0: 10 minutes
- Tier 1: 1 hour
- Tier 2: 8 hours
- Tier 3: 1 day
- Tier 4: 3 days
- Tier 5: 7 days
- Tier 6: 30 days
- Tier 7: graduated (no more reviews)

A correct answer promotes one tier. A wrong answer resets the streak,
counts a lapse and demotes: -1 while the learner is still early on the
ladder (tiers 0-2), -2 from tier 3 upwards. Tier never drops below 0.

Everything in this module is a pure function of its arguments.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta

MIN_TIER = 0
MAX_TIER = 7
GRADUATED_TIER = MAX_TIER

# First tier that receives the serious (-2) penalty
SERIOUS_PENALTY_FROM_TIER = 3
GENTLE_PENALTY = 1
SERIOUS_PENALTY = 2

TIER_INTERVALS_MINUTES: tuple[int | None, ...] = (
    10,
    60,
    480,
    1440,
    4320,
    10_080,
    43_200,
    None,
)

QUESTION_TYPES = ("pinyin", "yes_no", "multiple_choice")


class SRSInvariantError(ValueError):
    """A review state violates the tier ladder invariants."""

    pass


@dataclass(frozen=True)
class SRSState:
    """Scheduling state of one review track."""

    tier: int = 0
    streak: int = 0
    lapses: int = 0
    next_review: datetime | None = None

    @property
    def graduated(self) -> bool:
        return self.tier == GRADUATED_TIER


def _check_tier(tier: int) -> None:
    if not isinstance(tier, int) or isinstance(tier, bool):
        raise SRSInvariantError(f"tier must be an int, got {tier!r}")
    if tier < MIN_TIER or tier > MAX_TIER:
        raise SRSInvariantError(f"tier {tier} outside [{MIN_TIER}, {MAX_TIER}]")


def validate_state(state: SRSState) -> None:
    """Raise SRSInvariantError if the state is not a legal ladder position."""
    _check_tier(state.tier)
    if state.streak < 0 or state.lapses < 0:
        raise SRSInvariantError(
            f"negative counters: streak={state.streak} lapses={state.lapses}"
        )
    if state.graduated and state.next_review is not None:
        raise SRSInvariantError("graduated record must not have a next review")
    if not state.graduated and state.next_review is None:
        raise SRSInvariantError(f"tier {state.tier} record needs a next review")


def tier_to_interval(tier: int) -> timedelta | None:
    """Return the review delay for a tier, or None for graduated."""
    _check_tier(tier)
    minutes = TIER_INTERVALS_MINUTES[tier]
    if minutes is None:
        return None
    return timedelta(minutes=minutes)


def tier_to_percent(tier: int) -> int:
    """Display percentage for a tier. Tier 0 = 0%, tier 7 = 100%."""
    _check_tier(tier)
    return round(tier / MAX_TIER * 100)


def next_review_for(tier: int, now: datetime) -> datetime | None:
    """Compute when a record at this tier should next be reviewed."""
    interval = tier_to_interval(tier)
    if interval is None:
        return None
    return now + interval


def promote_tier(tier: int) -> int:
    _check_tier(tier)
    return min(tier + 1, MAX_TIER)


def demote_tier(tier: int) -> int:
    """Demote with a penalty that grows with progress.

    - Early learning (0-2): gentle -1
    - Late learning (3-7): serious -2
    """
    _check_tier(tier)
    penalty = SERIOUS_PENALTY if tier >= SERIOUS_PENALTY_FROM_TIER else GENTLE_PENALTY
    return max(tier - penalty, MIN_TIER)


def transition(state: SRSState, correct: bool, now: datetime) -> SRSState:
    """Apply one review outcome to a state.

    Args:
        state: Current scheduling state
        correct: Whether the learner answered correctly
        now: Reference time for the next review

    Returns:
        New SRSState (the input is never modified)

    Raises:
        SRSInvariantError: If the tier or counters are out of range
    """
    _check_tier(state.tier)
    if state.streak < 0 or state.lapses < 0:
        raise SRSInvariantError(
            f"negative counters: streak={state.streak} lapses={state.lapses}"
        )

    if correct:
        tier = promote_tier(state.tier)
        return replace(
            state,
            tier=tier,
            streak=state.streak + 1,
            next_review=next_review_for(tier, now),
        )

    tier = demote_tier(state.tier)
    return replace(
        state,
        tier=tier,
        streak=0,
        lapses=state.lapses + 1,
        next_review=next_review_for(tier, now),
    )


def initial_state(now: datetime) -> SRSState:
    """State of a freshly created track (tier 0, due after the first interval)."""
    return SRSState(tier=0, streak=0, lapses=0, next_review=next_review_for(0, now))


def question_types_for_language(language: str) -> list[str]:
    """Review tracks for a language. Chinese adds phonetic (pinyin) recall."""
    if language == "zh":
        return ["pinyin", "yes_no", "multiple_choice"]
    return ["yes_no", "multiple_choice"]


def format_question_type(question_type: str) -> str:
    return {
        "pinyin": "Pinyin",
        "yes_no": "Yes/No",
        "multiple_choice": "Multiple Choice",
    }.get(question_type, question_type)


def format_relative(when: datetime | None, now: datetime) -> str:
    """Human-readable distance to the next review.

    Examples:
        None -> "graduated"
        30 seconds ahead (or overdue) -> "now"
        5 minutes ahead -> "in 5 min"
        2 days ahead -> "in 2 days"
    """
    if when is None:
        return "graduated"

    seconds = int((when - now).total_seconds())
    if seconds <= 60:
        return "now"

    if seconds < 3600:
        return f"in {seconds // 60} min"
    if seconds < 86_400:
        hours = seconds // 3600
        return f"in {hours} hour" if hours == 1 else f"in {hours} hours"
    if seconds < 604_800:
        days = seconds // 86_400
        return f"in {days} day" if days == 1 else f"in {days} days"
    if seconds < 2_592_000:
        weeks = seconds // 604_800
        return f"in {weeks} week" if weeks == 1 else f"in {weeks} weeks"
    months = seconds // 2_592_000
    return f"in {months} month" if months == 1 else f"in {months} months"
