"""
FSRS parameter optimizer.

Trains scheduling weights from the review log. The numeric fit is delegated
to a ParameterFitter; this module only shapes the data and owns the
fitter's lifecycle.
"""

import asyncio
import logging
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from anker.domain.constants import (
    FSRS5_WEIGHT_COUNT,
    FSRS6_WEIGHT_COUNT,
    MIN_REVIEWS_FOR_OPTIMIZATION,
)
from anker.domain.errors import InsufficientDataError, OptimizationCancelled, OptimizationError
from anker.domain.models import CardId, LogEntry, OptimizationResult
from anker.domain.ports import ParameterFitter, ProgressCallback

logger = logging.getLogger(__name__)


@dataclass
class TrainingArrays:
    """Aligned arrays in the fitter's input format."""

    ratings: list[int]
    delta_days: list[int]
    lengths: list[int]

    @property
    def cards_used(self) -> int:
        return len(self.lengths)

    @property
    def reviews_used(self) -> int:
        return len(self.ratings)


def collect_training_arrays(entries: Iterable[LogEntry]) -> TrainingArrays:
    """
    Group entries by card (write order preserved) and flatten them.

    `delta_days` is the whole number of days since the same card's previous
    entry, 0 for a card's first entry.
    """
    by_card: dict[CardId, list[LogEntry]] = {}
    for entry in entries:
        by_card.setdefault(entry.card_id, []).append(entry)

    ratings: list[int] = []
    delta_days: list[int] = []
    lengths: list[int] = []

    for card_entries in by_card.values():
        previous = None
        for entry in card_entries:
            ratings.append(int(entry.rating))
            if previous is None:
                delta_days.append(0)
            else:
                delta_days.append(max(0, (entry.timestamp - previous.timestamp).days))
            previous = entry
        lengths.append(len(card_entries))

    return TrainingArrays(ratings=ratings, delta_days=delta_days, lengths=lengths)


def expected_weight_count(enable_short_term: bool) -> int:
    return FSRS6_WEIGHT_COUNT if enable_short_term else FSRS5_WEIGHT_COUNT


class ParameterOptimizer:
    """
    Service to optimize FSRS parameters from review history.

    Usage:
        optimizer = ParameterOptimizer(FsrsRsFitter)
        result = await optimizer.optimize(await log_store.read_all(), enable_short_term=True)
    """

    def __init__(
        self,
        fitter_factory: Callable[[], ParameterFitter],
        min_reviews: int = MIN_REVIEWS_FOR_OPTIMIZATION,
    ):
        self._fitter_factory = fitter_factory
        self._min_reviews = min_reviews

    async def optimize(
        self,
        entries: Iterable[LogEntry],
        enable_short_term: bool = True,
        on_progress: ProgressCallback | None = None,
        cancel: threading.Event | None = None,
    ) -> OptimizationResult:
        """
        Fit new weights from review log entries.

        Args:
            entries: Review log entries in write order.
            enable_short_term: Fit the 21-weight model with same-day reviews,
                or the 19-weight model without.
            on_progress: Called with (current, total) between fitting steps.
            cancel: Set to stop at the next progress checkpoint.

        Raises:
            InsufficientDataError: Fewer than 50 entries.
            OptimizationCancelled: `cancel` was set.
            OptimizationError: The fitter failed or returned a bad vector.
        """
        arrays = collect_training_arrays(entries)
        if arrays.reviews_used < self._min_reviews:
            raise InsufficientDataError(arrays.reviews_used, self._min_reviews)

        def progress(current: int, total: int) -> None:
            if on_progress is not None:
                on_progress(current, total)
            if cancel is not None and cancel.is_set():
                raise OptimizationCancelled(f"Optimization cancelled at step {current}/{total}")

        logger.info(
            f"[optimizer] Fitting on {arrays.reviews_used} reviews from {arrays.cards_used} cards "
            f"(short_term={enable_short_term})"
        )

        fitter = self._fitter_factory()
        try:
            weights = await asyncio.to_thread(
                fitter.compute_parameters,
                arrays.ratings,
                arrays.delta_days,
                arrays.lengths,
                progress,
                enable_short_term,
            )
        except OptimizationError:
            raise
        except Exception as e:
            logger.error(f"[optimizer] Training failed: {e}")
            raise OptimizationError(f"Training failed: {e}") from e
        finally:
            fitter.close()

        expected = expected_weight_count(enable_short_term)
        weights = [float(w) for w in weights]
        if len(weights) < expected:
            raise OptimizationError(f"Fitter returned {len(weights)} weights, expected {expected}")
        # An FSRS-6 fit without short-term data keeps only its FSRS-5 prefix
        weights = weights[:expected]

        return OptimizationResult(
            weights=weights,
            cards_used=arrays.cards_used,
            reviews_used=arrays.reviews_used,
            lengths=arrays.lengths,
        )
