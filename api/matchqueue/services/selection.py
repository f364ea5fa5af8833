from __future__ import annotations

from datetime import datetime, timezone

from ..config import CANDIDATE_POOL_CAP
from ..domain import QueueEntry, QueueIntent
from ..stores import QueueStore


class CandidateSelector:
    """Pulls a bounded, intent-filtered slice of the waiting queue.

    The cap bounds the scoring fan-out of a single ranking request. Entries are
    not reserved: two seekers may be handed the same candidate.
    """

    def __init__(self, queue_store: QueueStore, cap: int = CANDIDATE_POOL_CAP):
        if cap <= 0:
            raise ValueError("cap must be positive")
        self.queue_store = queue_store
        self.cap = cap

    def select_entries(self, seeker_id: str, intent: QueueIntent, now: datetime | None = None) -> list[QueueEntry]:
        now = now or datetime.now(timezone.utc)
        entries = self.queue_store.list_waiting(intent, exclude_user_id=seeker_id, limit=self.cap, now=now)
        # the seeker never scores against itself
        out = [e for e in entries if e.user_id != seeker_id and e.intent == intent]
        out.sort(key=lambda e: (e.joined_at, e.user_id))
        return out[: self.cap]

    def select(self, seeker_id: str, intent: QueueIntent, now: datetime | None = None) -> list[str]:
        return [e.user_id for e in self.select_entries(seeker_id, intent, now=now)]
