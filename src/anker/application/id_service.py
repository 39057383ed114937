"""Service for managing stable card IDs."""

import logging
from pathlib import Path

from ulid import ULID

from anker.application.utils.fs import iter_markdown_files
from anker.application.utils.text import parse_frontmatter, rebuild_markdown_with_frontmatter
from anker.domain.constants import CARD_ID_KEY, CARD_ID_PREFIX, CARD_TYPE_KEY, FLASHCARD_TYPE

logger = logging.getLogger(__name__)


def generate_card_id() -> str:
    """Generate a stable card ID using ULID."""
    return f"{CARD_ID_PREFIX}{ULID()}"


def assign_card_ids(vault_root: Path, dry_run: bool = False) -> int:
    """
    Scans the vault and ensures every flashcard note has a stable ID.
    Returns the number of IDs assigned.
    """
    ids_assigned = 0

    for file_path in iter_markdown_files(vault_root):
        content = file_path.read_text(encoding="utf-8")
        meta, body = parse_frontmatter(content)

        if not meta or "__yaml_error__" in meta:
            continue
        if meta.get(CARD_TYPE_KEY) != FLASHCARD_TYPE or meta.get(CARD_ID_KEY):
            continue

        meta[CARD_ID_KEY] = generate_card_id()
        ids_assigned += 1

        if not dry_run:
            file_path.write_text(rebuild_markdown_with_frontmatter(meta, body), encoding="utf-8")
            logger.info(f"Assigned ID in {file_path}")
        else:
            logger.info(f"[DRY RUN] Would assign ID in {file_path}")

    return ids_assigned
