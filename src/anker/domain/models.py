"""
Domain models for scheduling and review sessions.

These are pure data structures with no I/O or external dependencies.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Any

CardId = str


class Phase(IntEnum):
    """Memory phase of a card. Values match the `state` key stored in frontmatter."""

    NEW = 0
    LEARNING = 1
    REVIEW = 2
    RELEARNING = 3


class Rating(IntEnum):
    AGAIN = 1
    HARD = 2
    GOOD = 3
    EASY = 4


class SessionStatus(str, Enum):
    INACTIVE = "inactive"
    ACTIVE = "active"
    COMPLETED = "completed"


def ensure_utc(value: datetime) -> datetime:
    """Return `value` as an aware UTC datetime. Naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_instant(value: Any) -> datetime:
    if isinstance(value, datetime):
        return ensure_utc(value)
    text = str(value).strip()
    # fromisoformat only accepts a trailing Z from 3.11 on; normalise anyway
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(text))


def format_instant(value: datetime) -> str:
    return ensure_utc(value).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class MemoryState:
    """
    FSRS memory state of a single card.

    Attributes:
        due: Instant the card is next due (aware, UTC).
        stability: Days until recall probability drops to the target retention.
        difficulty: FSRS difficulty (1-10); 0 before the first rating.
        elapsed_days: Whole days since the previous review when last rated.
        scheduled_days: Whole days between the last rating and `due`.
        reps: Number of ratings applied.
        lapses: Number of times a REVIEW card was rated AGAIN.
        phase: NEW until the first rating is applied.
        last_review: Instant of the last rating, if any.
        step: Position within the learning/relearning steps.
    """

    due: datetime
    stability: float = 0.0
    difficulty: float = 0.0
    elapsed_days: int = 0
    scheduled_days: int = 0
    reps: int = 0
    lapses: int = 0
    phase: Phase = Phase.NEW
    last_review: datetime | None = None
    step: int = 0

    def __post_init__(self):
        object.__setattr__(self, "due", ensure_utc(self.due))
        if self.last_review is not None:
            object.__setattr__(self, "last_review", ensure_utc(self.last_review))
        if self.reps < self.lapses:
            raise ValueError(f"reps ({self.reps}) must be >= lapses ({self.lapses})")

    def is_due(self, cutoff: datetime) -> bool:
        return self.phase == Phase.NEW or self.due <= ensure_utc(cutoff)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "due": format_instant(self.due),
            "stability": self.stability,
            "difficulty": self.difficulty,
            "elapsed_days": self.elapsed_days,
            "scheduled_days": self.scheduled_days,
            "reps": self.reps,
            "lapses": self.lapses,
            "state": int(self.phase),
            "step": self.step,
        }
        if self.last_review is not None:
            data["last_review"] = format_instant(self.last_review)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MemoryState":
        last_review = data.get("last_review")
        return cls(
            due=parse_instant(data["due"]),
            stability=float(data.get("stability") or 0.0),
            difficulty=float(data.get("difficulty") or 0.0),
            elapsed_days=int(data.get("elapsed_days") or 0),
            scheduled_days=int(data.get("scheduled_days") or 0),
            reps=int(data.get("reps") or 0),
            lapses=int(data.get("lapses") or 0),
            phase=Phase(int(data.get("state") or 0)),
            last_review=parse_instant(last_review) if last_review else None,
            step=int(data.get("step") or 0),
        )


@dataclass(frozen=True)
class LogEntry:
    """
    A single review log entry. Immutable once written.

    Attributes:
        card_id: The card that was rated.
        timestamp: The session's frozen "now" at rating time.
        rating: Button pressed.
        elapsed_days: Whole days since the card's previous review.
    """

    card_id: CardId
    timestamp: datetime
    rating: Rating
    elapsed_days: int = 0

    def __post_init__(self):
        object.__setattr__(self, "timestamp", ensure_utc(self.timestamp))
        object.__setattr__(self, "rating", Rating(self.rating))
        if self.elapsed_days < 0:
            raise ValueError("elapsed_days must be >= 0")


@dataclass(frozen=True)
class CardRecord:
    """A card as listed by the catalog. `state` is None for cards never scheduled."""

    card_id: CardId
    key: str
    state: MemoryState | None = None
    side_count: int = 1


@dataclass(frozen=True)
class QueueItem:
    card_id: CardId
    key: str
    side_count: int = 1


@dataclass(frozen=True)
class SessionSnapshot:
    """Immutable view of a review session for UI and tests."""

    deck_scope: str
    status: SessionStatus
    current_card_id: CardId | None
    current_side: int
    side_count: int
    initial_total: int
    reviewed_count: int
    reviews_performed: int
    remaining: int

    @property
    def progress(self) -> float:
        """Completed share of the initial queue, 0-100."""
        if self.initial_total == 0:
            return 0.0
        return self.reviewed_count / self.initial_total * 100

    @property
    def progress_text(self) -> str:
        text = f"{self.reviewed_count}/{self.initial_total} completed"
        if self.reviews_performed != self.reviewed_count:
            text += f" ({self.reviews_performed} reviews)"
        return text


@dataclass(frozen=True)
class RatingOutcome:
    """
    Result of rating the current card.

    `audit_recorded` is False when the state was persisted but the review log
    append failed; the scheduling change stands in that case.
    """

    card_id: CardId
    rating: Rating
    new_state: MemoryState
    retained: bool
    audit_recorded: bool = True
    audit_error: str | None = None


@dataclass
class LogStats:
    cards_with_history: int
    total_reviews: int
    total_cards: int
    can_optimize: bool


@dataclass
class OptimizationResult:
    weights: list[float]
    cards_used: int
    reviews_used: int
    # Per-card entry counts, in the order the fitter received them
    lengths: list[int] = field(default_factory=list)
