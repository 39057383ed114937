"""Centralized constants for anker.

Magic numbers and defaults live here so every layer imports from a single
source of truth.
"""

# ---------- Review history ----------
REVIEW_LOG_FILENAME = "review-history.jsonl"
MIN_REVIEWS_FOR_OPTIMIZATION = 50

# ---------- FSRS ----------
FSRS5_WEIGHT_COUNT = 19
FSRS6_WEIGHT_COUNT = 21
# Appending these to an FSRS-5 vector gives the equivalent FSRS-6 vector:
# no same-day stability exponent and the fixed FSRS-5 decay.
FSRS5_TO_FSRS6_TAIL = (0.0, 0.5)
DEFAULT_DESIRED_RETENTION = 0.9
DEFAULT_MAXIMUM_INTERVAL = 36500
DEFAULT_LEARNING_STEPS = ("1m", "10m")
DEFAULT_RELEARNING_STEPS = ("10m",)

# ---------- Vault ----------
FLASHCARD_TYPE = "flashcard"
CARD_ID_KEY = "_id"
CARD_TYPE_KEY = "_type"
REVIEW_STATE_KEY = "_review"
CARD_ID_PREFIX = "card_"
