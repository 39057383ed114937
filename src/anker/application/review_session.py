"""
Review session manager.

Drives one review session at a time: builds the due queue, reveals card
sides, applies ratings through the scheduling model, persists the new state
and appends the review log.

Rating order matters. The new state is persisted before the review is logged:
a failed state write leaves the session untouched, while a failed log append
after a successful write keeps the scheduling change and is reported back as
a missing audit entry.
"""

import logging
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone

from anker.application.config import DueHorizon, SchedulingConfig
from anker.application.queue_builder import DueQueueBuilder, due_cutoff
from anker.application.scheduling import format_interval
from anker.domain.errors import (
    CardNotFoundError,
    NoDueCardsError,
    PersistenceError,
    ValidationError,
)
from anker.domain.models import (
    CardId,
    LogEntry,
    QueueItem,
    Rating,
    RatingOutcome,
    SessionSnapshot,
    SessionStatus,
)
from anker.domain.ports import CardCatalog, CardStateStore, ReviewLogStore, SchedulingModel

logger = logging.getLogger(__name__)

SESSION_EVENTS = (
    "session-started",
    "card-changed",
    "side-revealed",
    "session-complete",
    "session-ended",
)

Listener = Callable[[SessionSnapshot | None], None]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class _Session:
    """
    Mutable session state.

    Cards live in an arena keyed by id; `order` holds the queue as ids, so
    moving the current card to the back is a popleft/append pair.
    """

    deck_scope: str
    now: datetime
    cards: dict[CardId, QueueItem]
    order: deque[CardId]
    initial_total: int
    status: SessionStatus = SessionStatus.ACTIVE
    current_side: int = 0
    reviewed_count: int = 0
    reviews_performed: int = 0
    skipped: list[CardId] = field(default_factory=list)

    @property
    def current(self) -> QueueItem | None:
        if not self.order:
            return None
        return self.cards[self.order[0]]


class ReviewSessionManager:
    """
    Global manager for review sessions.

    Not reentrant: callers must serialize `start`, `advance_side`, `rate`
    and `end` (one call in flight at a time).
    """

    def __init__(
        self,
        catalog: CardCatalog,
        state_store: CardStateStore,
        model: SchedulingModel,
        log_store: ReviewLogStore,
        config: SchedulingConfig | None = None,
        clock: Callable[[], datetime] = _utc_now,
        horizon: DueHorizon = "instant",
    ):
        self._queue_builder = DueQueueBuilder(catalog)
        self._states = state_store
        self._model = model
        self._log = log_store
        self._config = config or SchedulingConfig()
        self._clock = clock
        self._horizon = horizon
        self._session: _Session | None = None
        self._listeners: dict[str, list[Listener]] = {name: [] for name in SESSION_EVENTS}

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def subscribe(self, event: str, callback: Listener) -> Callable[[], None]:
        """Register a listener. Returns a function that unsubscribes it."""
        if event not in self._listeners:
            raise ValueError(f"Unknown session event '{event}'")
        self._listeners[event].append(callback)
        return lambda: self._listeners[event].remove(callback)

    def _emit(self, event: str) -> None:
        snapshot = self.get_session()
        for callback in list(self._listeners[event]):
            try:
                callback(snapshot)
            except Exception as e:
                logger.error(f"Listener for '{event}' failed: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_session_active(self) -> bool:
        return self._session is not None and self._session.status == SessionStatus.ACTIVE

    def get_session(self) -> SessionSnapshot | None:
        session = self._session
        if session is None:
            return None
        current = session.current
        return SessionSnapshot(
            deck_scope=session.deck_scope,
            status=session.status,
            current_card_id=current.card_id if current else None,
            current_side=session.current_side,
            side_count=current.side_count if current else 0,
            initial_total=session.initial_total,
            reviewed_count=session.reviewed_count,
            reviews_performed=session.reviews_performed,
            remaining=len(session.order),
        )

    def is_last_side(self) -> bool:
        session = self._session
        if session is None or session.current is None:
            return False
        return session.current_side >= session.current.side_count - 1

    async def next_intervals(self) -> dict[Rating, str]:
        """Interval labels for the rating buttons of the current card."""
        session = self._require_active()
        item = session.current
        state = await self._states.get(item.card_id)
        if state is None:
            state = self._model.initial_state(session.now)
        previews = self._model.preview(state, session.now, self._config)
        return {r: format_interval(s.due, session.now) for r, s in previews.items()}

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def start(self, deck_scope: str) -> SessionSnapshot:
        """
        Start a new review session for a deck scope.

        Raises:
            ValidationError: A session is already active.
            NoDueCardsError: Nothing is due; no state changes.
        """
        if self.is_session_active():
            raise ValidationError("A review session is already active")

        now = self._clock()
        queue = await self._queue_builder.build(deck_scope, now, self._horizon)
        if not queue:
            raise NoDueCardsError(deck_scope)

        self._session = _Session(
            deck_scope=deck_scope,
            now=now,
            cards={item.card_id: item for item in queue},
            order=deque(item.card_id for item in queue),
            initial_total=len(queue),
        )
        logger.info(f"review: session started in '{deck_scope}' with {len(queue)} cards")
        self._emit("session-started")
        return self.get_session()

    def end(self) -> None:
        """End the current session. Valid from any state."""
        if self._session is not None:
            logger.info("review: session ended")
        self._session = None
        self._emit("session-ended")

    def advance_side(self) -> int:
        """Reveal the next side of the current card. Returns the current side."""
        session = self._require_active()
        if session.current_side + 1 < session.current.side_count:
            session.current_side += 1
            self._emit("side-revealed")
        return session.current_side

    def skip(self) -> SessionSnapshot:
        """Drop the current card from this session without rating it."""
        self._skip_current(self._require_active())
        return self.get_session()

    async def rate(self, rating: Rating | int) -> RatingOutcome:
        """
        Rate the current card and move on.

        Raises:
            ValidationError: No active session, invalid rating, or sides left to reveal.
            CardNotFoundError: The card vanished; it is skipped for this session.
            PersistenceError: The new state could not be saved; nothing changed.
        """
        session = self._require_active()
        item = session.current

        try:
            rating = Rating(rating)
        except ValueError:
            raise ValidationError(f"Invalid rating: {rating}") from None

        if session.current_side < item.side_count - 1:
            raise ValidationError(
                f"Reveal all sides before rating ({session.current_side + 1}/{item.side_count})"
            )

        # 1. Read
        try:
            old_state = await self._states.get(item.card_id)
        except CardNotFoundError:
            self._skip_current(session)
            raise
        if old_state is None:
            old_state = self._model.initial_state(session.now)

        # 2. Schedule
        new_state = self._model.apply_rating(old_state, rating, session.now, self._config)

        # 3. Persist; nothing below runs if this fails
        try:
            await self._states.set(item.card_id, new_state)
        except CardNotFoundError:
            self._skip_current(session)
            raise
        except OSError as e:
            raise PersistenceError(f"Failed to save review state for {item.card_id}: {e}") from e

        # 4. Audit; a failure here does not undo step 3
        audit_error = None
        try:
            await self._log.append(
                LogEntry(
                    card_id=item.card_id,
                    timestamp=session.now,
                    rating=rating,
                    elapsed_days=new_state.elapsed_days,
                )
            )
        except Exception as e:
            audit_error = str(e)
            logger.warning(f"review: state saved for {item.card_id}; review log append failed: {e}")

        # 5. Count
        session.reviews_performed += 1

        # 6. Retain or remove
        retained = new_state.due <= due_cutoff(session.now, self._horizon)
        session.order.popleft()
        if retained:
            session.order.append(item.card_id)
        else:
            del session.cards[item.card_id]
            session.reviewed_count += 1

        # 7. New head starts on its first side
        session.current_side = 0

        logger.debug(
            f"review: rated {item.card_id} {rating.name} due={new_state.due} "
            f"retained={retained} remaining={len(session.order)}"
        )

        # 8. Complete
        if session.order:
            self._emit("card-changed")
        else:
            self._complete(session)

        return RatingOutcome(
            card_id=item.card_id,
            rating=rating,
            new_state=new_state,
            retained=retained,
            audit_recorded=audit_error is None,
            audit_error=audit_error,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require_active(self) -> _Session:
        session = self._session
        if session is None or session.status != SessionStatus.ACTIVE:
            raise ValidationError("no active session")
        return session

    def _skip_current(self, session: _Session) -> None:
        """Drop the current card from this session without counting it as reviewed."""
        card_id = session.order.popleft()
        del session.cards[card_id]
        session.skipped.append(card_id)
        session.current_side = 0
        logger.warning(f"review: skipped card {card_id}")
        if session.order:
            self._emit("card-changed")
        else:
            self._complete(session)

    def _complete(self, session: _Session) -> None:
        session.status = SessionStatus.COMPLETED
        logger.info(
            f"review: session complete ({session.reviewed_count}/{session.initial_total}, "
            f"{session.reviews_performed} reviews)"
        )
        self._emit("session-complete")
