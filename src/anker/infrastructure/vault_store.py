"""
Markdown vault adapter for card state.

A card is a Markdown note whose frontmatter has `_type: flashcard`. Its id is
`_id`, its memory state the `_review` block, its storage key the
vault-relative POSIX path, and its sides the body split on `---` lines.
"""

import asyncio
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from anker.application.utils.fs import iter_markdown_files
from anker.application.utils.text import (
    get_card_sides,
    parse_frontmatter,
    rebuild_markdown_with_frontmatter,
)
from anker.domain.constants import CARD_ID_KEY, CARD_TYPE_KEY, FLASHCARD_TYPE, REVIEW_STATE_KEY
from anker.domain.errors import CardNotFoundError, PersistenceError
from anker.domain.models import CardId, CardRecord, MemoryState
from anker.domain.ports import CardCatalog, CardStateStore

logger = logging.getLogger(__name__)


def parse_review_state(meta: dict[str, Any], source: Path | str = "") -> MemoryState | None:
    review = meta.get(REVIEW_STATE_KEY)
    if not review:
        return None
    try:
        return MemoryState.from_dict(review)
    except (KeyError, TypeError, ValueError) as e:
        # Unreadable state is treated as a new card rather than hiding it
        logger.warning(f"[vault] Ignoring invalid {REVIEW_STATE_KEY} in {source}: {e}")
        return None


def write_atomic(path: Path, text: str) -> None:
    """Replace `path` with `text` so readers see either the old or the new file."""
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise


class MarkdownCardStore(CardStateStore, CardCatalog):
    """
    Card catalog and state store over a directory of Markdown notes.
    """

    def __init__(self, vault_root: Path):
        self.root = Path(vault_root)
        self._paths: dict[CardId, Path] = {}

    def key_for(self, path: Path) -> str:
        return path.relative_to(self.root).as_posix()

    def _read_card(self, path: Path) -> tuple[dict[str, Any], str] | None:
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            logger.debug(f"[vault] Skipped {path.name}: read_error:{e}")
            return None
        meta, body = parse_frontmatter(text)
        if not meta or "__yaml_error__" in meta:
            return None
        if meta.get(CARD_TYPE_KEY) != FLASHCARD_TYPE:
            return None
        return meta, body

    def _scan(self, deck_scope: str = "") -> list[CardRecord]:
        scope_root = self.root / deck_scope.strip("/") if deck_scope.strip("/") else self.root
        if not scope_root.exists():
            return []

        records: list[CardRecord] = []
        for path in iter_markdown_files(scope_root):
            parsed = self._read_card(path)
            if parsed is None:
                continue
            meta, body = parsed
            card_id = meta.get(CARD_ID_KEY)
            if not card_id:
                logger.warning(f"[vault] {path.name} has no {CARD_ID_KEY}; run 'anker ids assign'")
                continue

            card_id = str(card_id)
            self._paths[card_id] = path
            records.append(
                CardRecord(
                    card_id=card_id,
                    key=self.key_for(path),
                    state=parse_review_state(meta, path),
                    side_count=max(1, len(get_card_sides(body))),
                )
            )
        return records

    def _locate(self, card_id: CardId) -> Path:
        path = self._paths.get(card_id)
        if path is None or not path.exists():
            self._scan()
            path = self._paths.get(card_id)
        if path is None or not path.exists():
            raise CardNotFoundError(card_id)
        return path

    def _get_sync(self, card_id: CardId) -> MemoryState | None:
        path = self._locate(card_id)
        parsed = self._read_card(path)
        if parsed is None or str(parsed[0].get(CARD_ID_KEY)) != card_id:
            self._paths.pop(card_id, None)
            raise CardNotFoundError(card_id)
        return parse_review_state(parsed[0], path)

    def _set_sync(self, card_id: CardId, state: MemoryState) -> None:
        path = self._locate(card_id)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise CardNotFoundError(card_id) from None

        meta, body = parse_frontmatter(text)
        if "__yaml_error__" in meta:
            raise PersistenceError(f"Cannot update {path}: {meta['__yaml_error__']}")

        meta[REVIEW_STATE_KEY] = state.to_dict()
        write_atomic(path, rebuild_markdown_with_frontmatter(meta, body))
        logger.debug(f"[write] {path}: persisted review state")

    def _sides_sync(self, card_id: CardId) -> list[str]:
        parsed = self._read_card(self._locate(card_id))
        if parsed is None:
            raise CardNotFoundError(card_id)
        return get_card_sides(parsed[1])

    async def card_sides(self, card_id: CardId) -> list[str]:
        """Rendered-as-is text of each side, for display."""
        return await asyncio.to_thread(self._sides_sync, card_id)

    async def list_cards(self, deck_scope: str) -> list[CardRecord]:
        return await asyncio.to_thread(self._scan, deck_scope)

    async def get(self, card_id: CardId) -> MemoryState | None:
        return await asyncio.to_thread(self._get_sync, card_id)

    async def set(self, card_id: CardId, state: MemoryState) -> None:
        try:
            await asyncio.to_thread(self._set_sync, card_id, state)
        except OSError as e:
            raise PersistenceError(f"Failed to save review state for {card_id}: {e}") from e
