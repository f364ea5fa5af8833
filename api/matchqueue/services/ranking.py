from __future__ import annotations

import logging
import time
import uuid
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from ..config import (
    ALGORITHM_VERSION,
    DEFAULT_MATCHING_CONFIG,
    DEFAULT_MAX_MATCHES,
    MAX_MATCHES_LIMIT,
    SCORING_MAX_WORKERS,
    STORE_TIMEOUT_SECONDS,
)
from ..domain import (
    CandidateProfile,
    MatchAttempt,
    MatchingPreferences,
    MatchStatus,
    MatchSubject,
    QueueIntent,
    ScoreBreakdown,
)
from ..errors import InfrastructureError, MatchQueueError, ValidationError
from ..stores import MatchAttemptStore, PreferenceStore, QueueStore
from .scoring import score_candidates
from .selection import CandidateSelector
from .validation import validate_intent

logger = logging.getLogger(__name__)

_POLL_SECONDS = 0.05


@dataclass(frozen=True)
class RankedMatch:
    candidate_id: str
    match_attempt_id: str
    score: ScoreBreakdown

    def to_dict(self) -> dict[str, Any]:
        return {
            "candidateId": self.candidate_id,
            "matchAttemptId": self.match_attempt_id,
            "totalScorePct": round(self.score.total_score * 100),
            "breakdownPct": self.score.as_percentages(),
        }


@dataclass(frozen=True)
class RankingResult:
    matches: list[RankedMatch]
    algorithm: str
    timestamp: datetime

    def to_response(self) -> dict[str, Any]:
        return {
            "matches": [m.to_dict() for m in self.matches],
            "algorithm": self.algorithm,
            "timestamp": self.timestamp.isoformat(),
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def rank_scored(scored: list[tuple[str, ScoreBreakdown]], max_matches: int) -> list[tuple[str, ScoreBreakdown]]:
    # Ties on total score resolve by candidate id ascending.
    ordered = sorted(scored, key=lambda item: (-item[1].total_score, item[0]))
    return ordered[:max_matches]


class MatchRanker:
    """Selection -> scoring -> ranking -> truncation -> persistence.

    The ranker owns a thread pool used for candidate preference reads, scoring
    and attempt writes. Every store call runs under ``timeout_seconds``; a
    failure or timeout on any of them aborts the whole call with an
    ``InfrastructureError`` and no ranking is returned.
    """

    def __init__(
        self,
        preference_store: PreferenceStore,
        queue_store: QueueStore,
        attempt_store: MatchAttemptStore,
        *,
        selector: CandidateSelector | None = None,
        cfg: dict[str, Any] | None = None,
        max_workers: int = SCORING_MAX_WORKERS,
        timeout_seconds: float = STORE_TIMEOUT_SECONDS,
        clock: Callable[[], datetime] | None = None,
        id_factory: Callable[[], str] | None = None,
    ):
        self.preference_store = preference_store
        self.queue_store = queue_store
        self.attempt_store = attempt_store
        self.selector = selector or CandidateSelector(queue_store)
        self.cfg = dict(cfg or DEFAULT_MATCHING_CONFIG)
        self.max_workers = max(1, max_workers)
        self.timeout_seconds = timeout_seconds
        self.clock = clock or _utcnow
        self.id_factory = id_factory or (lambda: str(uuid.uuid4()))
        self._executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="match-ranker")

    def close(self) -> None:
        self._executor.shutdown(wait=True, cancel_futures=True)

    def _gather(self, operation: str, calls: list[tuple[str | None, Callable[[], Any]]]) -> list[Any]:
        """Run ``calls`` on the pool and return their results in order.

        ``timeout_seconds`` applies to each call from the moment a worker picks
        it up. Time spent queued behind other requests on the shared pool does
        not count against it.
        """
        if not calls:
            return []
        started: dict[int, float] = {}

        def _timed(i: int, fn: Callable[[], Any]) -> Any:
            started[i] = time.monotonic()
            return fn()

        futures: list[Future] = [self._executor.submit(_timed, i, fn) for i, (_, fn) in enumerate(calls)]
        position = {fut: i for i, fut in enumerate(futures)}
        poll = min(_POLL_SECONDS, self.timeout_seconds / 4)
        pending = set(futures)

        try:
            while pending:
                done, pending = wait(pending, timeout=poll, return_when=FIRST_EXCEPTION)
                for fut in sorted(done, key=position.__getitem__):
                    exc = fut.exception()
                    if exc is None:
                        continue
                    if isinstance(exc, MatchQueueError):
                        raise exc
                    target_id = calls[position[fut]][0]
                    logger.error("[ranker] %s failed target=%s error=%s", operation, target_id, exc.__class__.__name__)
                    raise InfrastructureError(operation, target_id) from exc

                now = time.monotonic()
                overdue = [
                    fut
                    for fut in pending
                    if position[fut] in started and now - started[position[fut]] > self.timeout_seconds
                ]
                if overdue:
                    stalled = calls[min(position[f] for f in overdue)][0]
                    logger.error("[ranker] %s timed out target=%s pending=%d", operation, stalled, len(pending))
                    raise InfrastructureError(operation, stalled, detail=f"{operation} timed out")
        finally:
            for fut in pending:
                fut.cancel()

        return [f.result() for f in futures]

    def _call(self, operation: str, target_id: str | None, fn: Callable[[], Any]) -> Any:
        return self._gather(operation, [(target_id, fn)])[0]

    def load_preferences(self, user_ids: list[str]) -> list[MatchingPreferences]:
        return self._gather(
            "preferences.get",
            [(uid, (lambda uid=uid: self.preference_store.get(uid))) for uid in user_ids],
        )

    def score(self, seeker: MatchSubject, subjects: list[MatchSubject], now: datetime) -> list[ScoreBreakdown]:
        return score_candidates(seeker, subjects, now=now, cfg=self.cfg, executor=self._executor)

    def find_best_matches(
        self,
        seeker_id: str,
        intent: QueueIntent | str,
        max_matches: int = DEFAULT_MAX_MATCHES,
    ) -> RankingResult:
        if seeker_id is None or not str(seeker_id).strip():
            raise ValidationError(reason="seeker_id_required", detail="userId is required")
        seeker_id = str(seeker_id).strip()
        intent = intent if isinstance(intent, QueueIntent) else validate_intent(intent)
        if isinstance(max_matches, bool) or not isinstance(max_matches, int) or not (1 <= max_matches <= MAX_MATCHES_LIMIT):
            raise ValidationError(
                reason="max_matches_out_of_range",
                detail=f"maxMatches must be between 1 and {MAX_MATCHES_LIMIT}",
            )

        now = self.clock()
        seeker_prefs = self._call("preferences.get", seeker_id, lambda: self.preference_store.get(seeker_id))
        seeker_entry = self._call("queue.get_waiting", seeker_id, lambda: self.queue_store.get_waiting(seeker_id))
        entries = self._call("queue.list_waiting", seeker_id, lambda: self.selector.select_entries(seeker_id, intent, now=now))

        if not entries:
            logger.info("[ranker] seeker=%s intent=%s candidates=0 returned=0", seeker_id, intent.value)
            return RankingResult(matches=[], algorithm=ALGORITHM_VERSION, timestamp=now)

        candidate_prefs = self.load_preferences([e.user_id for e in entries])

        seeker = MatchSubject(preferences=seeker_prefs, profile=seeker_entry.profile if seeker_entry else CandidateProfile())
        subjects = [MatchSubject(preferences=p, profile=e.profile) for p, e in zip(candidate_prefs, entries)]
        scores = self.score(seeker, subjects, now)

        ranked = rank_scored([(e.user_id, s) for e, s in zip(entries, scores)], max_matches)

        metadata = {"intent": intent.value, "timestamp": now.isoformat()}
        attempts = [
            MatchAttempt(
                id=self.id_factory(),
                user1_id=seeker_id,
                user2_id=candidate_id,
                score=score,
                algorithm=ALGORITHM_VERSION,
                metadata=dict(metadata),
                created_at=now,
                status=MatchStatus.PENDING,
            )
            for candidate_id, score in ranked
        ]
        self._gather(
            "match_attempt.insert",
            [(a.user2_id, (lambda a=a: self.attempt_store.insert(a))) for a in attempts],
        )

        logger.info(
            "[ranker] seeker=%s intent=%s candidates=%d returned=%d",
            seeker_id,
            intent.value,
            len(entries),
            len(attempts),
        )
        return RankingResult(
            matches=[RankedMatch(candidate_id=a.user2_id, match_attempt_id=a.id, score=a.score) for a in attempts],
            algorithm=ALGORITHM_VERSION,
            timestamp=now,
        )
