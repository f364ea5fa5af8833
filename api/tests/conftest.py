import threading
import time
import uuid
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from matchqueue.domain import (
    CandidateProfile,
    MatchAttempt,
    MatchingPreferences,
    MatchStatus,
    QueueEntry,
    QueueIntent,
    QueueStatus,
    default_preferences,
)
from matchqueue.errors import InfrastructureError
from matchqueue.services.matching_service import MatchingService
from matchqueue.services.ranking import MatchRanker

NOW = datetime(2026, 3, 2, 15, 30, tzinfo=timezone.utc)


class _FaultsMixin:
    """Lets a test make one operation fail or stall for one user id."""

    def _init_faults(self) -> None:
        self.fail: set[tuple[str, str | None]] = set()
        self.stall: dict[tuple[str, str | None], float] = {}
        self.calls: list[tuple[str, Any]] = []
        self._lock = threading.Lock()

    def _hit(self, operation: str, target: str | None) -> None:
        with self._lock:
            self.calls.append((operation, target))
        delay = self.stall.get((operation, target)) or self.stall.get((operation, None))
        if delay:
            time.sleep(delay)
        if (operation, target) in self.fail or (operation, None) in self.fail:
            raise InfrastructureError(operation, target)


class MemoryPreferenceStore(_FaultsMixin):
    def __init__(self) -> None:
        self.rows: dict[str, MatchingPreferences] = {}
        self._row_lock = threading.Lock()
        self._init_faults()

    def get(self, user_id: str) -> MatchingPreferences:
        self._hit("preferences.get", user_id)
        return self.rows.get(user_id) or default_preferences(user_id)

    def update(self, user_id: str, apply) -> MatchingPreferences:
        self._hit("preferences.update", user_id)
        # stands in for SELECT ... FOR UPDATE
        with self._row_lock:
            current = self.rows.get(user_id) or default_preferences(user_id)
            stored = current.merged(apply(current))
            self.rows[user_id] = stored
        return stored


class MemoryQueueStore(_FaultsMixin):
    def __init__(self) -> None:
        self.entries: list[QueueEntry] = []
        self._init_faults()

    def _waiting_index(self, user_id: str) -> int | None:
        for i, e in enumerate(self.entries):
            if e.user_id == user_id and e.status == QueueStatus.WAITING:
                return i
        return None

    def join(self, entry: QueueEntry) -> QueueEntry:
        self._hit("queue.join", entry.user_id)
        idx = self._waiting_index(entry.user_id)
        if idx is None:
            self.entries.append(entry)
            return entry
        refreshed = replace(self.entries[idx], intent=entry.intent, profile=entry.profile, expires_at=entry.expires_at)
        self.entries[idx] = refreshed
        return refreshed

    def leave(self, user_id: str, now: datetime) -> QueueEntry | None:
        self._hit("queue.leave", user_id)
        idx = self._waiting_index(user_id)
        if idx is None:
            return None
        self.entries[idx] = replace(self.entries[idx], status=QueueStatus.LEFT, left_at=now)
        return self.entries[idx]

    def get_waiting(self, user_id: str) -> QueueEntry | None:
        self._hit("queue.get_waiting", user_id)
        idx = self._waiting_index(user_id)
        return self.entries[idx] if idx is not None else None

    def list_waiting(self, intent: QueueIntent, exclude_user_id: str, limit: int, now: datetime) -> list[QueueEntry]:
        self._hit("queue.list_waiting", exclude_user_id)
        rows = [
            e
            for e in self.entries
            if e.status == QueueStatus.WAITING
            and e.intent == intent
            and e.user_id != exclude_user_id
            and (e.expires_at is None or e.expires_at > now)
        ]
        rows.sort(key=lambda e: (e.joined_at, e.user_id))
        return rows[:limit]

    def queue_position(self, user_id: str) -> tuple[int | None, int]:
        self._hit("queue.position", user_id)
        waiting = sorted(
            (e for e in self.entries if e.status == QueueStatus.WAITING),
            key=lambda e: (e.joined_at, e.user_id),
        )
        for pos, e in enumerate(waiting, start=1):
            if e.user_id == user_id:
                return pos, len(waiting)
        return None, len(waiting)

    def stats(self) -> dict[str, Any]:
        self._hit("queue.stats", None)
        by_intent: dict[str, int] = {}
        by_gender: dict[str, int] = {}
        for e in self.entries:
            if e.status != QueueStatus.WAITING:
                continue
            by_intent[e.intent.value] = by_intent.get(e.intent.value, 0) + 1
            gender = e.profile.gender.value if e.profile.gender else "UNKNOWN"
            by_gender[gender] = by_gender.get(gender, 0) + 1
        return {"totalWaiting": sum(by_intent.values()), "byIntent": by_intent, "byGender": by_gender}

    def expire_stale(self, now: datetime) -> int:
        self._hit("queue.expire_stale", None)
        count = 0
        for i, e in enumerate(self.entries):
            if e.status == QueueStatus.WAITING and e.expires_at is not None and e.expires_at <= now:
                self.entries[i] = replace(e, status=QueueStatus.LEFT, left_at=now)
                count += 1
        return count

    def mark_matched(self, user_ids: list[str], now: datetime) -> bool:
        self._hit("queue.mark_matched", ",".join(sorted(user_ids)))
        with self._lock:
            live = {}
            for uid in set(user_ids):
                idx = self._waiting_index(uid)
                if idx is None or (self.entries[idx].expires_at is not None and self.entries[idx].expires_at <= now):
                    return False
                live[uid] = idx
            for idx in live.values():
                self.entries[idx] = replace(self.entries[idx], status=QueueStatus.MATCHED)
        return True


class MemoryAttemptStore(_FaultsMixin):
    def __init__(self) -> None:
        self.rows: dict[str, MatchAttempt] = {}
        self._init_faults()

    def insert(self, attempt: MatchAttempt) -> MatchAttempt:
        self._hit("match_attempt.insert", attempt.user2_id)
        with self._lock:
            self.rows.setdefault(attempt.id, attempt)
        return attempt

    def _for_user(self, user_id: str) -> list[MatchAttempt]:
        return [a for a in self.rows.values() if user_id in (a.user1_id, a.user2_id)]

    def history(self, user_id: str, limit: int, offset: int) -> list[MatchAttempt]:
        self._hit("match_attempt.history", user_id)
        rows = sorted(self._for_user(user_id), key=lambda a: a.id)
        rows.sort(key=lambda a: a.created_at, reverse=True)
        return rows[offset : offset + limit]

    def count_for_user(self, user_id: str) -> int:
        self._hit("match_attempt.count", user_id)
        return len(self._for_user(user_id))

    def stats(self, since: datetime) -> dict[str, Any]:
        self._hit("match_attempt.stats", None)
        rows = list(self.rows.values())
        return {
            "totalMatches": len(rows),
            "matchesToday": sum(1 for a in rows if a.created_at >= since),
            "avgMatchScore": round(sum(a.score.total_score for a in rows) / len(rows), 4) if rows else 0.0,
            "successfulMatches": sum(1 for a in rows if a.status == MatchStatus.ACCEPTED),
        }


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def pref_store() -> MemoryPreferenceStore:
    return MemoryPreferenceStore()


@pytest.fixture
def queue_store() -> MemoryQueueStore:
    return MemoryQueueStore()


@pytest.fixture
def attempt_store() -> MemoryAttemptStore:
    return MemoryAttemptStore()


@pytest.fixture
def add_prefs(pref_store):
    def _add(user_id: str, **fields) -> MatchingPreferences:
        prefs = default_preferences(user_id).merged(fields)
        pref_store.rows[user_id] = prefs
        return prefs

    return _add


@pytest.fixture
def add_waiting(queue_store, now):
    def _add(
        user_id: str,
        intent: QueueIntent = QueueIntent.CASUAL,
        *,
        joined_offset_seconds: int = 0,
        expires_at: datetime | None = None,
        **profile,
    ) -> QueueEntry:
        joined_at = now - timedelta(minutes=5) + timedelta(seconds=joined_offset_seconds)
        entry = QueueEntry(
            id=str(uuid.uuid4()),
            user_id=user_id,
            status=QueueStatus.WAITING,
            intent=intent,
            joined_at=joined_at,
            expires_at=expires_at or now + timedelta(minutes=5),
            profile=CandidateProfile.from_dict(profile),
        )
        queue_store.entries.append(entry)
        return entry

    return _add


@pytest.fixture
def ranker(pref_store, queue_store, attempt_store, now):
    r = MatchRanker(pref_store, queue_store, attempt_store, max_workers=4, timeout_seconds=2.0, clock=lambda: now)
    yield r
    r.close()


@pytest.fixture
def service(pref_store, queue_store, attempt_store, now):
    s = MatchingService(pref_store, queue_store, attempt_store, clock=lambda: now, max_workers=4, timeout_seconds=2.0)
    yield s
    s.close()
