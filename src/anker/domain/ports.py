"""
Ports (interfaces) for the scheduling engine.

These define the contract that infrastructure adapters must implement.
Application services depend on these abstractions, not concrete implementations.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from datetime import datetime
from typing import TYPE_CHECKING

from .models import CardId, CardRecord, LogEntry, LogStats, MemoryState, Rating

if TYPE_CHECKING:
    from anker.application.config import SchedulingConfig

ProgressCallback = Callable[[int, int], None]


class CardStateStore(ABC):
    """
    Port for reading and writing per-card memory state.

    Implementations:
        - MarkdownCardStore: `_review` frontmatter block of each card note.
    """

    @abstractmethod
    async def get(self, card_id: CardId) -> MemoryState | None:
        """
        Fetch the stored state of a card.

        Returns:
            The stored MemoryState, or None if the card was never scheduled.

        Raises:
            CardNotFoundError: The card id is unknown to the store.
        """
        pass

    @abstractmethod
    async def set(self, card_id: CardId, state: MemoryState) -> None:
        """
        Persist a card's state.

        Raises:
            CardNotFoundError: The card id is unknown to the store.
            PersistenceError: The write did not complete.
        """
        pass


class CardCatalog(ABC):
    """Port for listing the cards of a deck scope."""

    @abstractmethod
    async def list_cards(self, deck_scope: str) -> list[CardRecord]:
        """
        List cards whose storage key lies under `deck_scope`.

        Args:
            deck_scope: Storage-key prefix ("" for everything).
        """
        pass


class ReviewLogStore(ABC):
    """Port for the append-only review history."""

    @abstractmethod
    async def append(self, entry: LogEntry) -> None:
        pass

    @abstractmethod
    async def read_all(self) -> list[LogEntry]:
        """All entries in write order."""
        pass

    @abstractmethod
    async def reset(self) -> int:
        """Truncate the log. Returns the number of entries it held."""
        pass

    async def entries_for(self, card_id: CardId) -> list[LogEntry]:
        return [e for e in await self.read_all() if e.card_id == card_id]

    async def stats(self, total_cards: int = 0) -> LogStats:
        from .constants import MIN_REVIEWS_FOR_OPTIMIZATION

        per_card: dict[CardId, int] = {}
        for entry in await self.read_all():
            per_card[entry.card_id] = per_card.get(entry.card_id, 0) + 1
        total = sum(per_card.values())
        return LogStats(
            cards_with_history=len(per_card),
            total_reviews=total,
            total_cards=total_cards,
            can_optimize=total >= MIN_REVIEWS_FOR_OPTIMIZATION,
        )


class SchedulingModel(ABC):
    """
    Port for the memory model mapping (state, rating, time) to a new state.

    Implementations must be deterministic: the only clock is the `now` passed in.
    """

    @abstractmethod
    def initial_state(self, now: datetime) -> MemoryState:
        pass

    @abstractmethod
    def apply_rating(
        self,
        state: MemoryState,
        rating: Rating,
        now: datetime,
        config: "SchedulingConfig",
    ) -> MemoryState:
        pass

    def preview(
        self, state: MemoryState, now: datetime, config: "SchedulingConfig"
    ) -> dict[Rating, MemoryState]:
        """Resulting state for every rating, without persisting anything."""
        return {rating: self.apply_rating(state, rating, now, config) for rating in Rating}


class ParameterFitter(ABC):
    """
    Port for the numeric optimizer that fits scheduling weights.

    Instances hold native resources; callers must call `close()` on every path.

    Implementations:
        - FsrsRsFitter: fsrs-rs via fsrs_rs_python.
    """

    @abstractmethod
    def compute_parameters(
        self,
        ratings: Sequence[int],
        delta_days: Sequence[int],
        lengths: Sequence[int],
        progress: ProgressCallback,
        enable_short_term: bool,
    ) -> list[float]:
        """
        Fit weights from aligned review arrays.

        Args:
            ratings: Flat ratings (1-4) for all cards.
            delta_days: Flat whole days since the card's previous review (0 first).
            lengths: Entries per card; sums to len(ratings).
            progress: Called with (current, total) between fitting steps.
            enable_short_term: Whether same-day reviews inform the fit.
        """
        pass

    def close(self) -> None:
        pass
