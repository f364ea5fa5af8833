"""
Store contracts consumed by the matching core.

Each store is passed into the ranker and the service explicitly; there is no
module-level client. ``repo.py`` holds the PostgreSQL implementations, tests use
in-memory ones.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Mapping, Protocol

from .domain import MatchAttempt, MatchingPreferences, QueueEntry, QueueIntent


class PreferenceStore(Protocol):
    def get(self, user_id: str) -> MatchingPreferences:
        """Return the stored preferences, or documented defaults when none exist."""
        ...

    def update(
        self,
        user_id: str,
        apply: Callable[[MatchingPreferences], Mapping[str, Any]],
    ) -> MatchingPreferences:
        """Read-modify-write under the user's lock.

        ``apply`` receives the current record (defaults when none exists) and
        returns the fields to write; no other update for the same user can run
        between the read and the write. An exception from ``apply`` leaves the
        stored record untouched.
        """
        ...


class QueueStore(Protocol):
    def join(self, entry: QueueEntry) -> QueueEntry:
        """Atomically create or refresh the user's single WAITING entry."""
        ...

    def leave(self, user_id: str, now: datetime) -> QueueEntry | None:
        ...

    def get_waiting(self, user_id: str) -> QueueEntry | None:
        ...

    def list_waiting(
        self,
        intent: QueueIntent,
        exclude_user_id: str,
        limit: int,
        now: datetime,
    ) -> list[QueueEntry]:
        ...

    def queue_position(self, user_id: str) -> tuple[int | None, int]:
        """Return (1-based position of the user's WAITING entry, total WAITING)."""
        ...

    def stats(self) -> dict[str, Any]:
        ...

    def expire_stale(self, now: datetime) -> int:
        ...

    def mark_matched(self, user_ids: list[str], now: datetime) -> bool:
        """Move every user's live WAITING entry to MATCHED, or none of them.

        Returns False without writing when any of the users no longer has an
        unexpired WAITING entry.
        """
        ...


class MatchAttemptStore(Protocol):
    def insert(self, attempt: MatchAttempt) -> MatchAttempt:
        ...

    def history(self, user_id: str, limit: int, offset: int) -> list[MatchAttempt]:
        ...

    def count_for_user(self, user_id: str) -> int:
        ...

    def stats(self, since: datetime) -> dict[str, Any]:
        """Return totalMatches, matchesToday (created at or after ``since``),
        avgMatchScore and successfulMatches."""
        ...
