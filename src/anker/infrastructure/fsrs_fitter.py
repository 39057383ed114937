"""
ParameterFitter backed by fsrs-rs (`fsrs_rs_python`).
"""

import logging
from collections.abc import Sequence

from anker.domain.ports import ParameterFitter, ProgressCallback

logger = logging.getLogger(__name__)


def split_histories(
    ratings: Sequence[int], delta_days: Sequence[int], lengths: Sequence[int]
) -> list[list[tuple[int, int]]]:
    """Cut the flat arrays back into one (rating, delta_t) history per card."""
    if sum(lengths) != len(ratings) or len(ratings) != len(delta_days):
        raise ValueError(
            f"Misaligned arrays: {len(ratings)} ratings, {len(delta_days)} deltas, "
            f"lengths sum to {sum(lengths)}"
        )
    histories = []
    pos = 0
    for length in lengths:
        histories.append(list(zip(ratings[pos : pos + length], delta_days[pos : pos + length])))
        pos += length
    return histories


def training_prefixes(
    history: list[tuple[int, int]], enable_short_term: bool
) -> list[list[tuple[int, int]]]:
    """
    Expand one card history into training items.

    Each item is a prefix ending at a review that has at least one earlier
    review. Without short-term data, same-day repeats are dropped first.
    """
    if not enable_short_term and history:
        history = [history[0]] + [r for r in history[1:] if r[1] > 0]
    return [history[: i + 1] for i in range(1, len(history))]


class FsrsRsFitter(ParameterFitter):
    """
    Direct fsrs-rs optimizer.

    Holds one native FSRS instance per fit; `close()` releases it.
    """

    STEPS = 2

    def __init__(self):
        import fsrs_rs_python

        self._lib = fsrs_rs_python
        self._fsrs = fsrs_rs_python.FSRS(parameters=list(fsrs_rs_python.DEFAULT_PARAMETERS))

    def compute_parameters(
        self,
        ratings: Sequence[int],
        delta_days: Sequence[int],
        lengths: Sequence[int],
        progress: ProgressCallback,
        enable_short_term: bool,
    ) -> list[float]:
        if self._fsrs is None:
            raise RuntimeError("Fitter already closed")

        progress(0, self.STEPS)

        train_set = []
        for history in split_histories(ratings, delta_days, lengths):
            for prefix in training_prefixes(history, enable_short_term):
                reviews = [self._lib.FSRSReview(rating, delta_t) for rating, delta_t in prefix]
                train_set.append(self._lib.FSRSItem(reviews=reviews))

        logger.debug(f"[fsrs-rs] Built {len(train_set)} training items")
        progress(1, self.STEPS)

        parameters = list(self._fsrs.compute_parameters(train_set))
        progress(2, self.STEPS)
        return parameters

    def close(self) -> None:
        self._fsrs = None
