"""In-memory fakes for the ports, shared by the test suite."""

from datetime import datetime, timedelta, timezone

import yaml

from anker.domain.errors import CardNotFoundError
from anker.domain.models import CardRecord, LogEntry, MemoryState, Phase, Rating
from anker.domain.ports import CardCatalog, CardStateStore, ReviewLogStore, SchedulingModel

NOW = datetime(2026, 3, 14, 9, 30, tzinfo=timezone.utc)


class InMemoryCardStore(CardStateStore, CardCatalog):
    """Catalog + state store over a dict; `sides` maps card id -> side count."""

    def __init__(self, sides: dict[str, int] | None = None, prefix: str = "flashcards"):
        self.prefix = prefix
        self.sides = dict(sides or {})
        self.states: dict[str, MemoryState] = {}
        self.keys: dict[str, str] = {cid: f"{prefix}/{cid}.md" for cid in self.sides}
        self.set_calls: list[tuple[str, MemoryState]] = []

    def add(self, card_id: str, key: str, sides: int = 1, state: MemoryState | None = None):
        self.sides[card_id] = sides
        self.keys[card_id] = key
        if state is not None:
            self.states[card_id] = state

    async def list_cards(self, deck_scope: str) -> list[CardRecord]:
        return [
            CardRecord(
                card_id=cid,
                key=self.keys[cid],
                state=self.states.get(cid),
                side_count=self.sides[cid],
            )
            for cid in self.sides
        ]

    async def get(self, card_id: str) -> MemoryState | None:
        if card_id not in self.sides:
            raise CardNotFoundError(card_id)
        return self.states.get(card_id)

    async def set(self, card_id: str, state: MemoryState) -> None:
        if card_id not in self.sides:
            raise CardNotFoundError(card_id)
        self.set_calls.append((card_id, state))
        self.states[card_id] = state


class InMemoryReviewLog(ReviewLogStore):
    def __init__(self):
        self.entries: list[LogEntry] = []

    async def append(self, entry: LogEntry) -> None:
        self.entries.append(entry)

    async def read_all(self) -> list[LogEntry]:
        return list(self.entries)

    async def reset(self) -> int:
        count = len(self.entries)
        self.entries.clear()
        return count


class StubSchedulingModel(SchedulingModel):
    """Again/Hard stay due at `now`; Good/Easy move one/four days out."""

    def initial_state(self, now):
        return MemoryState(due=now)

    def apply_rating(self, state, rating, now, config):
        if rating in (Rating.AGAIN, Rating.HARD):
            due, phase = now, Phase.LEARNING
        else:
            due = now + timedelta(days=1 if rating == Rating.GOOD else 4)
            phase = Phase.REVIEW
        return MemoryState(
            due=due,
            stability=1.0,
            difficulty=5.0,
            reps=state.reps + 1,
            lapses=state.lapses,
            phase=phase,
            last_review=now,
            scheduled_days=(due - now).days,
        )


def write_card(
    vault, rel_path: str, card_id: str | None, body: str = "Front\n\n---\n\nBack", review=None
):
    """Write a flashcard note into a vault and return its path."""
    meta = {"_type": "flashcard"}
    if card_id is not None:
        meta["_id"] = card_id
    if review is not None:
        meta["_review"] = review
    path = vault / rel_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f"---\n{yaml.safe_dump(meta, sort_keys=False)}---\n{body}\n", encoding="utf-8")
    return path
