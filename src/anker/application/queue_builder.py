"""
Queue builder for review sessions.

Builds the ordered due queue of a deck scope by:
1. Listing cards whose storage key lies under the scope
2. Keeping New cards and cards due by the cutoff
3. Sorting by storage key, once, for the life of the session

A card id listed under several keys is queued once, from its first key.
"""

import logging
from datetime import datetime

from anker.application.config import DueHorizon
from anker.domain.models import CardId, CardRecord, QueueItem, ensure_utc
from anker.domain.ports import CardCatalog

logger = logging.getLogger(__name__)


def due_cutoff(now: datetime, horizon: DueHorizon = "instant") -> datetime:
    """
    Instant up to which a card counts as due.

    "instant" uses `now` itself; "end_of_day" extends it to the last
    microsecond of the local day containing `now`.
    """
    now = ensure_utc(now)
    if horizon == "end_of_day":
        local = now.astimezone()
        end_of_day = local.replace(hour=23, minute=59, second=59, microsecond=999999)
        return ensure_utc(end_of_day)
    return now


def in_scope(key: str, deck_scope: str) -> bool:
    scope = deck_scope.strip("/")
    if not scope:
        return True
    return key == scope or key.startswith(scope + "/")


def is_card_due(card: CardRecord, cutoff: datetime) -> bool:
    """New cards (no stored state) are always due."""
    if card.state is None:
        return True
    return card.state.is_due(cutoff)


class DueQueueBuilder:
    def __init__(self, catalog: CardCatalog):
        self._catalog = catalog

    async def build(
        self, deck_scope: str, now: datetime, horizon: DueHorizon = "instant"
    ) -> list[QueueItem]:
        """
        Build the ordered due queue for a deck scope.

        Args:
            deck_scope: Storage-key prefix of the deck ("" for the whole vault).
            now: Frozen session instant.
            horizon: How far past `now` a due date may lie and still count.

        Returns:
            QueueItems sorted by storage key, then card id.
        """
        cutoff = due_cutoff(now, horizon)
        cards = await self._catalog.list_cards(deck_scope)

        seen: dict[CardId, str] = {}
        due: list[CardRecord] = []
        for card in sorted(cards, key=lambda c: (c.key, c.card_id)):
            if not in_scope(card.key, deck_scope):
                continue
            # A copied note keeps its id; only the first key schedules it
            if card.card_id in seen:
                logger.warning(
                    f"[queue] {card.key} duplicates id {card.card_id} of {seen[card.card_id]}; "
                    "skipped"
                )
                continue
            seen[card.card_id] = card.key
            if is_card_due(card, cutoff):
                due.append(card)

        logger.debug(f"[queue] {len(due)}/{len(cards)} cards due in '{deck_scope}'")

        return [
            QueueItem(card_id=c.card_id, key=c.key, side_count=max(1, c.side_count)) for c in due
        ]
