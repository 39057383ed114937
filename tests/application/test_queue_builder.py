from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from anker.application.queue_builder import DueQueueBuilder, due_cutoff, in_scope
from anker.domain.models import CardRecord, MemoryState, Phase
from tests.fakes import InMemoryCardStore


def _review(due, reps=3):
    return MemoryState(due=due, stability=4.0, difficulty=5.0, reps=reps, phase=Phase.REVIEW)


@pytest.mark.parametrize(
    "key, scope, expected",
    [
        ("flashcards/a.md", "flashcards", True),
        ("flashcards/sub/a.md", "flashcards", True),
        ("flashcards/a.md", "flashcards/", True),
        ("flashcards2/a.md", "flashcards", False),
        ("other/a.md", "flashcards", False),
        ("anything.md", "", True),
    ],
)
def test_in_scope(key, scope, expected):
    assert in_scope(key, scope) is expected


def test_due_cutoff_instant(now):
    assert due_cutoff(now, "instant") == now


def test_due_cutoff_end_of_day(now):
    cutoff = due_cutoff(now, "end_of_day")
    assert cutoff >= now
    assert cutoff - now < timedelta(days=1)
    assert cutoff.astimezone().date() == now.astimezone().date()


@pytest.mark.asyncio
async def test_build_keeps_new_and_due_cards_sorted_by_key(now):
    store = InMemoryCardStore()
    store.add("c3", "flashcards/c.md")
    store.add("c1", "flashcards/a.md", state=_review(now - timedelta(days=1)))
    store.add("c2", "flashcards/b.md", state=_review(now + timedelta(hours=2)))
    store.add("c4", "flashcards/sub/d.md", state=_review(now))

    queue = await DueQueueBuilder(store).build("flashcards", now)

    assert [q.card_id for q in queue] == ["c1", "c3", "c4"]


@pytest.mark.asyncio
async def test_build_excludes_cards_outside_scope(now):
    store = InMemoryCardStore()
    store.add("in", "flashcards/a.md")
    store.add("out", "flashcards2/a.md")
    store.add("far", "notes/a.md")

    queue = await DueQueueBuilder(store).build("flashcards", now)

    assert [q.card_id for q in queue] == ["in"]


@pytest.mark.asyncio
async def test_build_with_end_of_day_horizon_includes_later_today(now):
    store = InMemoryCardStore()
    later = due_cutoff(now, "end_of_day")
    store.add("c1", "flashcards/a.md", state=_review(later))

    assert await DueQueueBuilder(store).build("flashcards", now, "instant") == []
    queue = await DueQueueBuilder(store).build("flashcards", now, "end_of_day")
    assert [q.card_id for q in queue] == ["c1"]


@pytest.mark.asyncio
async def test_build_clamps_side_count(now):
    store = InMemoryCardStore()
    store.add("c1", "flashcards/a.md", sides=0)
    store.add("c2", "flashcards/b.md", sides=3)

    queue = await DueQueueBuilder(store).build("", now)

    assert [q.side_count for q in queue] == [1, 3]


@pytest.mark.asyncio
async def test_build_empty_catalog(now):
    assert await DueQueueBuilder(InMemoryCardStore()).build("flashcards", now) == []


@pytest.mark.asyncio
async def test_build_queues_duplicate_id_once(now):
    catalog = AsyncMock()
    catalog.list_cards.return_value = [
        CardRecord(card_id="dup", key="flashcards/b.md", side_count=2),
        CardRecord(card_id="dup", key="flashcards/a.md"),
        CardRecord(card_id="other", key="flashcards/c.md"),
    ]

    queue = await DueQueueBuilder(catalog).build("flashcards", now)

    assert [(q.card_id, q.key) for q in queue] == [
        ("dup", "flashcards/a.md"),
        ("other", "flashcards/c.md"),
    ]
