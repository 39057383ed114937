"""
FSRS scheduling model.

Wraps the `fsrs` library scheduler: converts between our MemoryState and
`fsrs.Card`, applies a rating at an explicit instant and keeps the
bookkeeping (reps, lapses, elapsed/scheduled days) the library does not track.
"""

import logging
from datetime import datetime, timedelta
from functools import lru_cache

from fsrs import Card, Scheduler, State
from fsrs import Rating as FsrsRating

from anker.application.config import SchedulingConfig
from anker.domain.constants import FSRS5_TO_FSRS6_TAIL, FSRS5_WEIGHT_COUNT
from anker.domain.errors import ConfigurationError
from anker.domain.models import MemoryState, Phase, Rating, ensure_utc
from anker.domain.ports import SchedulingModel

logger = logging.getLogger(__name__)

_PHASE_TO_STATE = {
    Phase.LEARNING: State.Learning,
    Phase.REVIEW: State.Review,
    Phase.RELEARNING: State.Relearning,
}
_STATE_TO_PHASE = {state: phase for phase, state in _PHASE_TO_STATE.items()}


def widen_weights(weights: tuple[float, ...]) -> tuple[float, ...]:
    """Turn an FSRS-5 vector into the equivalent FSRS-6 vector; pass others through."""
    if len(weights) == FSRS5_WEIGHT_COUNT:
        return tuple(weights) + FSRS5_TO_FSRS6_TAIL
    return tuple(weights)


@lru_cache(maxsize=8)
def _build_scheduler(config: SchedulingConfig) -> Scheduler:
    kwargs = {
        "desired_retention": config.desired_retention,
        "learning_steps": config.effective_learning_steps,
        "relearning_steps": config.effective_relearning_steps,
        "maximum_interval": config.maximum_interval,
        "enable_fuzzing": config.enable_fuzz,
    }
    if config.weights:
        kwargs["parameters"] = widen_weights(config.weights)
    try:
        return Scheduler(**kwargs)
    except ValueError as e:
        raise ConfigurationError(f"Invalid FSRS parameters: {e}") from e


def whole_days(delta: timedelta) -> int:
    return max(0, delta.days)


class FsrsSchedulingModel(SchedulingModel):
    """
    Standard FSRS engine using the `fsrs` library.
    Pure logic: no storage, no clock reads beyond the `now` passed in.
    """

    def initial_state(self, now: datetime) -> MemoryState:
        return MemoryState(due=ensure_utc(now))

    def _to_card(self, state: MemoryState) -> Card:
        # Cards without a usable memory are rated as brand new
        if state.phase == Phase.NEW or state.stability <= 0 or state.last_review is None:
            return Card(
                card_id=0,
                state=State.Learning,
                step=0,
                stability=None,
                difficulty=None,
                due=state.due,
                last_review=None,
            )

        fsrs_state = _PHASE_TO_STATE[state.phase]
        return Card(
            card_id=0,
            state=fsrs_state,
            step=None if fsrs_state == State.Review else state.step,
            stability=state.stability,
            difficulty=state.difficulty,
            due=state.due,
            last_review=state.last_review,
        )

    def elapsed_days(self, state: MemoryState, now: datetime) -> int:
        if state.phase == Phase.NEW or state.reps == 0:
            return 0
        anchor = state.last_review if state.last_review is not None else state.due
        return whole_days(ensure_utc(now) - anchor)

    def apply_rating(
        self,
        state: MemoryState,
        rating: Rating,
        now: datetime,
        config: SchedulingConfig,
    ) -> MemoryState:
        now = ensure_utc(now)
        rating = Rating(rating)
        scheduler = _build_scheduler(config)

        card, _review_log = scheduler.review_card(
            self._to_card(state), FsrsRating(int(rating)), review_datetime=now
        )

        lapses = state.lapses
        if rating == Rating.AGAIN and state.phase == Phase.REVIEW:
            lapses += 1

        new_state = MemoryState(
            due=card.due,
            stability=float(card.stability),
            difficulty=float(card.difficulty),
            elapsed_days=self.elapsed_days(state, now),
            scheduled_days=whole_days(card.due - now),
            reps=state.reps + 1,
            lapses=lapses,
            phase=_STATE_TO_PHASE[card.state],
            last_review=now,
            step=card.step or 0,
        )
        logger.debug(
            f"[fsrs] {state.phase.name}->{new_state.phase.name} rating={rating.name} "
            f"S={new_state.stability:.2f} D={new_state.difficulty:.2f} due={new_state.due}"
        )
        return new_state


def format_interval(due: datetime, now: datetime) -> str:
    """Format the wait until `due` for a rating button (e.g. "<1m", "10m", "3h", "5d")."""
    diff = (ensure_utc(due) - ensure_utc(now)).total_seconds()
    mins = round(diff / 60)
    hours = round(diff / 3600)
    days = round(diff / 86400)
    months = round(days / 30)
    years = round(days / 365)

    if mins < 1:
        return "<1m"
    if mins < 60:
        return f"{mins}m"
    if hours < 24:
        return f"{hours}h"
    if days < 30:
        return f"{days}d"
    if months < 12:
        return f"{months}mo"
    return f"{years}y"
