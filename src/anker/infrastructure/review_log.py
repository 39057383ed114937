"""
Review history store persisted as newline-delimited JSON.

One record per line:
    {"cardId": "...", "entry": {"timestamp": "...", "rating": 3, "elapsed_days": 2}}

Writers are serialized by a thread lock and an advisory lock on a sibling
`.lock` file, so a background process appending to the same history cannot
interleave with a live session. Readers take no lock: they only accept
newline-terminated lines, so an in-flight or torn write is never returned.
"""

import asyncio
import json
import logging
import os
import sys
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from anker.domain.errors import PersistenceError
from anker.domain.models import LogEntry, Rating, format_instant
from anker.domain.ports import ReviewLogStore

logger = logging.getLogger(__name__)

_TAIL_CHUNK = 4096


class LogEntryPayload(BaseModel):
    timestamp: datetime
    rating: int = Field(ge=1, le=4)
    elapsed_days: int = Field(ge=0)


class LogRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    card_id: str = Field(alias="cardId", min_length=1)
    entry: LogEntryPayload

    def to_entry(self) -> LogEntry:
        return LogEntry(
            card_id=self.card_id,
            timestamp=self.entry.timestamp,
            rating=Rating(self.entry.rating),
            elapsed_days=self.entry.elapsed_days,
        )


def encode_entry(entry: LogEntry) -> bytes:
    record = {
        "cardId": entry.card_id,
        "entry": {
            "timestamp": format_instant(entry.timestamp),
            "rating": int(entry.rating),
            "elapsed_days": int(entry.elapsed_days),
        },
    }
    return (json.dumps(record, ensure_ascii=False) + "\n").encode("utf-8")


def decode_lines(raw: bytes) -> list[LogEntry]:
    """Parse complete lines; a trailing line without newline is ignored."""
    complete, _, _tail = raw.rpartition(b"\n")
    entries: list[LogEntry] = []
    for lineno, line in enumerate(complete.split(b"\n"), start=1):
        line = line.strip()
        if not line:
            continue
        try:
            entries.append(LogRecord.model_validate_json(line).to_entry())
        except (PydanticValidationError, ValueError) as e:
            # Skip malformed lines to avoid failing the whole load
            logger.warning(f"[review-log] Skipping malformed line {lineno}: {e}")
    return entries


@contextmanager
def _os_lock(lock_path: Path) -> Iterator[None]:
    """Exclusive advisory lock shared with other processes using the same history."""
    fd = os.open(lock_path, os.O_RDWR | os.O_CREAT, 0o644)
    try:
        if sys.platform == "win32":
            import msvcrt

            os.lseek(fd, 0, os.SEEK_SET)
            msvcrt.locking(fd, msvcrt.LK_LOCK, 1)
            try:
                yield
            finally:
                os.lseek(fd, 0, os.SEEK_SET)
                msvcrt.locking(fd, msvcrt.LK_UNLCK, 1)
        else:
            import fcntl

            fcntl.flock(fd, fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(fd, fcntl.LOCK_UN)
    finally:
        os.close(fd)


def _complete_size(fd: int, size: int) -> int:
    """Length of the file up to and including its last newline."""
    pos = size
    while pos > 0:
        start = max(0, pos - _TAIL_CHUNK)
        os.lseek(fd, start, os.SEEK_SET)
        chunk = os.read(fd, pos - start)
        idx = chunk.rfind(b"\n")
        if idx != -1:
            return start + idx + 1
        pos = start
    return 0


class JsonlReviewLogStore(ReviewLogStore):
    """
    Append-only review history in a JSONL file.

    The file can be reset (truncated) but entries are never edited.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock_path = self.path.with_name(self.path.name + ".lock")
        self._thread_lock = threading.Lock()

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self._thread_lock, _os_lock(self._lock_path):
            yield

    # ------------------------------------------------------------------
    # Blocking implementations
    # ------------------------------------------------------------------

    def _append_sync(self, line: bytes) -> None:
        with self._exclusive():
            fd = os.open(self.path, os.O_RDWR | os.O_APPEND | os.O_CREAT, 0o644)
            try:
                size = os.fstat(fd).st_size
                start = _complete_size(fd, size)
                if start != size:
                    logger.warning(
                        f"[review-log] Dropping {size - start} bytes of torn write in {self.path}"
                    )
                    os.ftruncate(fd, start)
                try:
                    written = os.write(fd, line)
                    if written != len(line):
                        raise OSError(f"short write ({written}/{len(line)} bytes)")
                    os.fsync(fd)
                except OSError:
                    os.ftruncate(fd, start)
                    raise
            finally:
                os.close(fd)

    def _read_sync(self) -> list[LogEntry]:
        try:
            raw = self.path.read_bytes()
        except FileNotFoundError:
            return []
        return decode_lines(raw)

    def _reset_sync(self) -> int:
        with self._exclusive():
            count = len(self._read_sync())
            with open(self.path, "wb"):
                pass
        return count

    # ------------------------------------------------------------------
    # Port
    # ------------------------------------------------------------------

    async def append(self, entry: LogEntry) -> None:
        """
        Append one entry as a single complete line.

        Raises:
            PersistenceError: The line was not written; prior content is intact.
        """
        line = encode_entry(entry)
        try:
            await asyncio.to_thread(self._append_sync, line)
        except OSError as e:
            raise PersistenceError(f"Failed to append review log entry to {self.path}: {e}") from e

    async def read_all(self) -> list[LogEntry]:
        try:
            entries = await asyncio.to_thread(self._read_sync)
        except OSError as e:
            raise PersistenceError(f"Failed to read review log {self.path}: {e}") from e
        logger.debug(f"[review-log] Loaded {len(entries)} entries from {self.path}")
        return entries

    async def reset(self) -> int:
        try:
            count = await asyncio.to_thread(self._reset_sync)
        except OSError as e:
            raise PersistenceError(f"Failed to reset review log {self.path}: {e}") from e
        logger.info(f"[review-log] Reset {self.path} ({count} entries removed)")
        return count
