# Domain Package
from .models import (
    CardId,
    CardRecord,
    LogEntry,
    MemoryState,
    Phase,
    QueueItem,
    Rating,
    RatingOutcome,
    SessionSnapshot,
    SessionStatus,
)
from .ports import CardCatalog, CardStateStore, ParameterFitter, ReviewLogStore, SchedulingModel

__all__ = [
    "CardId",
    "CardRecord",
    "LogEntry",
    "MemoryState",
    "Phase",
    "QueueItem",
    "Rating",
    "RatingOutcome",
    "SessionSnapshot",
    "SessionStatus",
    "CardCatalog",
    "CardStateStore",
    "ParameterFitter",
    "ReviewLogStore",
    "SchedulingModel",
]
