import asyncio
import json
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from anker.domain.errors import PersistenceError
from anker.domain.models import LogEntry, Rating
from anker.infrastructure.review_log import JsonlReviewLogStore, decode_lines, encode_entry

T0 = datetime(2026, 3, 14, 9, 30, tzinfo=timezone.utc)


def _entry(i: int, card: str = "card1") -> LogEntry:
    return LogEntry(
        card_id=card,
        timestamp=T0 + timedelta(minutes=i),
        rating=Rating((i % 4) + 1),
        elapsed_days=i % 3,
    )


@pytest.fixture
def store(tmp_path):
    return JsonlReviewLogStore(tmp_path / ".anker" / "review-history.jsonl")


def test_encode_entry_wire_format():
    line = encode_entry(LogEntry("card_1", T0, Rating.GOOD, elapsed_days=2))
    assert line.endswith(b"\n")
    assert json.loads(line) == {
        "cardId": "card_1",
        "entry": {"timestamp": "2026-03-14T09:30:00Z", "rating": 3, "elapsed_days": 2},
    }


def test_decode_lines_skips_malformed_and_partial_tail():
    good = encode_entry(_entry(1))
    raw = good + b"not json\n" + b'{"cardId": "x", "entry": {"rating": 9}}\n' + good + b'{"cardId'
    entries = decode_lines(raw)
    assert entries == [_entry(1), _entry(1)]


@pytest.mark.asyncio
async def test_read_missing_file(store):
    assert await store.read_all() == []


@pytest.mark.asyncio
async def test_append_then_read_preserves_order(store):
    written = [_entry(i, card=f"card{i % 3}") for i in range(10)]
    for entry in written:
        await store.append(entry)

    assert await store.read_all() == written
    assert store.path.read_bytes().count(b"\n") == 10


@pytest.mark.asyncio
async def test_entries_for_and_stats(store):
    for i in range(4):
        await store.append(_entry(i, card="a"))
    await store.append(_entry(9, card="b"))

    assert len(await store.entries_for("a")) == 4
    stats = await store.stats(total_cards=10)
    assert stats.cards_with_history == 2
    assert stats.total_reviews == 5
    assert stats.total_cards == 10
    assert stats.can_optimize is False


@pytest.mark.asyncio
async def test_reset_returns_count_and_empties(store):
    for i in range(3):
        await store.append(_entry(i))

    assert await store.reset() == 3
    assert await store.read_all() == []
    assert await store.reset() == 0

    await store.append(_entry(5))
    assert await store.read_all() == [_entry(5)]


@pytest.mark.asyncio
async def test_torn_tail_is_ignored_then_dropped(store):
    await store.append(_entry(1))
    with open(store.path, "ab") as f:
        f.write(b'{"cardId": "card1", "entry": {"times')

    assert await store.read_all() == [_entry(1)]

    await store.append(_entry(2))
    assert await store.read_all() == [_entry(1), _entry(2)]
    assert store.path.read_bytes() == encode_entry(_entry(1)) + encode_entry(_entry(2))


@pytest.mark.asyncio
async def test_concurrent_appends_never_interleave(store):
    entries = [_entry(i, card=f"card{i}") for i in range(40)]

    await asyncio.gather(*(store.append(e) for e in entries))

    lines = store.path.read_bytes().splitlines()
    assert len(lines) == 40
    for line in lines:
        json.loads(line)
    assert sorted(e.card_id for e in await store.read_all()) == sorted(e.card_id for e in entries)


@pytest.mark.asyncio
async def test_failed_append_raises_and_keeps_prior_content(store):
    await store.append(_entry(1))
    before = store.path.read_bytes()

    with patch("anker.infrastructure.review_log.os.write", side_effect=OSError("disk full")):
        with pytest.raises(PersistenceError):
            await store.append(_entry(2))

    assert store.path.read_bytes() == before
    assert await store.read_all() == [_entry(1)]


@pytest.mark.asyncio
async def test_short_write_is_rolled_back(store):
    await store.append(_entry(1))
    before = store.path.read_bytes()

    with patch("anker.infrastructure.review_log.os.write", return_value=3):
        with pytest.raises(PersistenceError):
            await store.append(_entry(2))

    assert store.path.read_bytes() == before
