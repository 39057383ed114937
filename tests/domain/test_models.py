from datetime import datetime, timedelta, timezone

import pytest

from anker.domain.errors import CardNotFoundError, InsufficientDataError, NoDueCardsError
from anker.domain.models import (
    LogEntry,
    MemoryState,
    Phase,
    Rating,
    SessionSnapshot,
    SessionStatus,
    format_instant,
    parse_instant,
)

NOW = datetime(2026, 3, 14, 9, 30, tzinfo=timezone.utc)


def _snapshot(**kwargs):
    data = dict(
        deck_scope="flashcards",
        status=SessionStatus.ACTIVE,
        current_card_id="card1",
        current_side=0,
        side_count=1,
        initial_total=7,
        reviewed_count=0,
        reviews_performed=0,
        remaining=7,
    )
    data.update(kwargs)
    return SessionSnapshot(**data)


def test_parse_instant_accepts_z_suffix():
    assert parse_instant("2026-03-14T09:30:00Z") == NOW
    assert parse_instant("2026-03-14T10:30:00+01:00") == NOW


def test_parse_instant_treats_naive_as_utc():
    assert parse_instant(datetime(2026, 3, 14, 9, 30)) == NOW


def test_format_instant_uses_z():
    assert format_instant(NOW) == "2026-03-14T09:30:00Z"


def test_memory_state_dict_round_trip():
    state = MemoryState(
        due=NOW + timedelta(days=3),
        stability=3.2,
        difficulty=5.1,
        elapsed_days=2,
        scheduled_days=3,
        reps=4,
        lapses=1,
        phase=Phase.REVIEW,
        last_review=NOW,
    )
    data = state.to_dict()
    assert data["state"] == 2
    assert data["due"].endswith("Z")
    assert MemoryState.from_dict(data) == state


def test_memory_state_from_dict_defaults():
    state = MemoryState.from_dict({"due": "2026-03-14T09:30:00Z"})
    assert state.phase == Phase.NEW
    assert state.reps == 0
    assert state.last_review is None


def test_memory_state_rejects_more_lapses_than_reps():
    with pytest.raises(ValueError):
        MemoryState(due=NOW, reps=1, lapses=2)


def test_memory_state_is_due():
    state = MemoryState(due=NOW + timedelta(hours=1), phase=Phase.REVIEW, reps=1)
    assert not state.is_due(NOW)
    assert state.is_due(NOW + timedelta(hours=1))
    # New cards are due regardless of their stored date
    assert MemoryState(due=NOW + timedelta(days=5)).is_due(NOW)


def test_log_entry_coerces_rating():
    entry = LogEntry(card_id="c", timestamp=NOW, rating=3)
    assert entry.rating is Rating.GOOD


def test_log_entry_rejects_negative_elapsed_days():
    with pytest.raises(ValueError):
        LogEntry(card_id="c", timestamp=NOW, rating=Rating.GOOD, elapsed_days=-1)


def test_progress_text_without_repeats():
    snap = _snapshot(reviewed_count=1, reviews_performed=1, remaining=6)
    assert snap.progress_text == "1/7 completed"


def test_progress_text_with_repeats():
    snap = _snapshot(reviewed_count=1, reviews_performed=2, remaining=6)
    assert snap.progress_text == "1/7 completed (2 reviews)"


def test_progress_percentage():
    assert _snapshot(reviewed_count=7, reviews_performed=9, remaining=0).progress == 100.0
    assert _snapshot(initial_total=0, remaining=0).progress == 0.0


def test_error_messages():
    assert "flashcards" in str(NoDueCardsError("flashcards"))
    assert CardNotFoundError("abc").card_id == "abc"
    err = InsufficientDataError(49)
    assert err.count == 49
    assert err.required == 50
    assert "50" in str(err) and "49" in str(err)
