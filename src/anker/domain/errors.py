"""Exception hierarchy shared by every layer.

All errors are recoverable at the caller's scope; nothing here should ever
abort the host process.
"""


class AnkerError(Exception):
    """Base class for all anker errors."""


class ConfigurationError(AnkerError):
    """Invalid scheduling configuration (steps, weights, retention)."""


class ValidationError(AnkerError):
    """An operation was rejected before any state changed."""


class NoDueCardsError(AnkerError):
    def __init__(self, deck_scope: str):
        super().__init__(f"No due cards in '{deck_scope or '/'}'")
        self.deck_scope = deck_scope


class PersistenceError(AnkerError):
    """A card state or review log write could not be completed."""


class CardNotFoundError(AnkerError):
    def __init__(self, card_id: str):
        super().__init__(f"Card '{card_id}' not found")
        self.card_id = card_id


class InsufficientDataError(AnkerError):
    def __init__(self, count: int, required: int = 50):
        super().__init__(
            f"Insufficient review data for optimization. Need at least {required} "
            f"reviews, found {count}. Keep reviewing cards to collect more data."
        )
        self.count = count
        self.required = required


class OptimizationError(AnkerError):
    """The parameter fitter failed or returned an unusable result."""


class OptimizationCancelled(OptimizationError):
    """Optimization stopped at a progress checkpoint on request."""


class ExtensionError(AnkerError):
    def __init__(self, name: str, message: str):
        super().__init__(f"Extension '{name}' failed: {message}")
        self.name = name
