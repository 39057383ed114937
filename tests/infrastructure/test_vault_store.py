from datetime import datetime, timedelta, timezone

import pytest

from anker.application.utils.text import parse_frontmatter
from anker.domain.errors import CardNotFoundError, PersistenceError
from anker.domain.models import MemoryState, Phase
from anker.infrastructure.vault_store import MarkdownCardStore, parse_review_state
from tests.fakes import write_card

NOW = datetime(2026, 3, 14, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def vault(mock_vault):
    write_card(mock_vault, "flashcards/a.md", "card_a")
    write_card(mock_vault, "flashcards/sub/b.md", "card_b", body="Only one side")
    write_card(mock_vault, "flashcards2/c.md", "card_c")
    write_card(mock_vault, "flashcards/no_id.md", None)
    (mock_vault / "flashcards" / "plain.md").write_text("# Just a note\n", encoding="utf-8")
    return mock_vault


@pytest.fixture
def store(vault):
    return MarkdownCardStore(vault)


def _state():
    return MemoryState(
        due=NOW + timedelta(days=3),
        stability=3.5,
        difficulty=4.2,
        elapsed_days=1,
        scheduled_days=3,
        reps=2,
        phase=Phase.REVIEW,
        last_review=NOW,
    )


@pytest.mark.asyncio
async def test_list_cards_in_scope(store):
    cards = await store.list_cards("flashcards")

    assert {c.card_id for c in cards} == {"card_a", "card_b"}
    by_id = {c.card_id: c for c in cards}
    assert by_id["card_a"].key == "flashcards/a.md"
    assert by_id["card_a"].side_count == 2
    assert by_id["card_b"].key == "flashcards/sub/b.md"
    assert by_id["card_b"].side_count == 1
    assert all(c.state is None for c in cards)


@pytest.mark.asyncio
async def test_list_cards_whole_vault(store):
    cards = await store.list_cards("")
    assert {c.card_id for c in cards} == {"card_a", "card_b", "card_c"}


@pytest.mark.asyncio
async def test_list_cards_missing_scope(store):
    assert await store.list_cards("nowhere") == []


@pytest.mark.asyncio
async def test_get_new_card_returns_none(store):
    assert await store.get("card_a") is None


@pytest.mark.asyncio
async def test_get_unknown_card(store):
    with pytest.raises(CardNotFoundError):
        await store.get("card_zzz")


@pytest.mark.asyncio
async def test_set_then_get(store, vault):
    await store.set("card_a", _state())

    assert await store.get("card_a") == _state()
    meta, body = parse_frontmatter((vault / "flashcards/a.md").read_text(encoding="utf-8"))
    assert meta["_id"] == "card_a"
    assert meta["_review"]["state"] == 2
    assert "Front" in body and "Back" in body

    # A fresh store reads the state back from disk
    cards = await MarkdownCardStore(vault).list_cards("flashcards")
    assert {c.card_id: c.state for c in cards}["card_a"] == _state()


@pytest.mark.asyncio
async def test_set_unknown_card(store):
    with pytest.raises(CardNotFoundError):
        await store.set("card_zzz", _state())


@pytest.mark.asyncio
async def test_deleted_card_is_not_found(store, vault):
    await store.list_cards("")
    (vault / "flashcards/a.md").unlink()

    with pytest.raises(CardNotFoundError):
        await store.get("card_a")


@pytest.mark.asyncio
async def test_moved_card_is_found_again(store, vault):
    await store.list_cards("")
    (vault / "flashcards/a.md").rename(vault / "flashcards2/a.md")

    await store.set("card_a", _state())
    assert await store.get("card_a") == _state()


@pytest.mark.asyncio
async def test_set_with_broken_yaml(store, vault):
    await store.list_cards("")
    path = vault / "flashcards/a.md"
    path.write_text("---\n_type: flashcard\n_id: card_a\n_id: dup\n---\nBody\n", encoding="utf-8")

    with pytest.raises(PersistenceError):
        await store.set("card_a", _state())


@pytest.mark.asyncio
async def test_card_sides(store):
    assert await store.card_sides("card_a") == ["Front", "Back"]


def test_parse_review_state_ignores_invalid_block():
    assert parse_review_state({"_review": {"due": "not a date"}}) is None
    assert parse_review_state({}) is None
