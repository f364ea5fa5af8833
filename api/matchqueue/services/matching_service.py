from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Mapping

from ..config import (
    ALGORITHM_VERSION,
    DEFAULT_MATCHING_CONFIG,
    DEFAULT_MAX_MATCHES,
    DEFAULT_QUEUE_INTENT,
    HISTORY_DEFAULT_LIMIT,
    HISTORY_MAX_LIMIT,
    QUEUE_ENTRY_TTL_MINUTES,
    QUEUE_MATCH_BATCH_SIZE,
    QUEUE_MATCH_MIN_SCORE,
    SCORING_MAX_WORKERS,
    STORE_TIMEOUT_SECONDS,
)
from ..domain import (
    DatingGender,
    MatchAttempt,
    MatchingPreferences,
    MatchStatus,
    MatchSubject,
    QueueEntry,
    QueueIntent,
    QueueStatus,
)
from ..errors import ConfigurationError, ValidationError
from ..stores import MatchAttemptStore, PreferenceStore, QueueStore
from .ranking import MatchRanker, RankingResult, rank_scored
from .state_machine import transition_queue_status
from .validation import (
    BASE_PREFERENCE_FIELDS,
    DATING_PREFERENCE_FIELDS,
    validate_intent,
    validate_preferences,
    validate_profile,
)

logger = logging.getLogger(__name__)

_REQUIRED_CFG_KEYS = (
    "FAMILY_PLANS_W",
    "RELIGION_W",
    "EDUCATION_W",
    "POLITICAL_W",
    "PREMIUM_BONUS",
    "PREMIUM_BONUS_CAP",
    "AGE_DECAY_YEARS",
    "UNKNOWN_AGE_SCORE",
)

# Pairing order within an intent group; a missing gender sorts with NONBINARY.
_PAIRING_PRIORITY = {DatingGender.WOMAN: 0, DatingGender.NONBINARY: 1, DatingGender.MAN: 2}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _require_user_id(user_id: Any) -> str:
    if user_id is None or not str(user_id).strip():
        raise ValidationError(reason="user_id_required", detail="userId is required")
    return str(user_id).strip()


def _check_cfg(cfg: Mapping[str, Any]) -> dict[str, float]:
    out: dict[str, float] = {}
    for key in _REQUIRED_CFG_KEYS:
        try:
            out[key] = float(cfg[key])
        except (KeyError, TypeError, ValueError):
            raise ConfigurationError(reason="invalid_matching_config", detail=f"{key} must be a number") from None
    if out["AGE_DECAY_YEARS"] <= 0:
        raise ConfigurationError(reason="invalid_matching_config", detail="AGE_DECAY_YEARS must be positive")
    return out


class MatchingService:
    """Entry point for every matching and queue operation.

    Stores are injected; the HTTP layer and the scripts build one instance with
    the PostgreSQL stores and tests build one with in-memory stores.
    """

    def __init__(
        self,
        preference_store: PreferenceStore,
        queue_store: QueueStore,
        attempt_store: MatchAttemptStore,
        *,
        cfg: Mapping[str, Any] | None = None,
        ranker: MatchRanker | None = None,
        clock: Callable[[], datetime] | None = None,
        max_workers: int = SCORING_MAX_WORKERS,
        timeout_seconds: float = STORE_TIMEOUT_SECONDS,
        queue_ttl: timedelta = timedelta(minutes=QUEUE_ENTRY_TTL_MINUTES),
        queue_match_min_score: float = QUEUE_MATCH_MIN_SCORE,
        queue_batch_size: int = QUEUE_MATCH_BATCH_SIZE,
    ):
        self.preference_store = preference_store
        self.queue_store = queue_store
        self.attempt_store = attempt_store
        self.cfg = _check_cfg(cfg or DEFAULT_MATCHING_CONFIG)
        self.clock = clock or _utcnow
        self.queue_ttl = queue_ttl
        self.queue_match_min_score = queue_match_min_score
        self.queue_batch_size = queue_batch_size
        self.ranker = ranker or MatchRanker(
            preference_store,
            queue_store,
            attempt_store,
            cfg=self.cfg,
            max_workers=max_workers,
            timeout_seconds=timeout_seconds,
            clock=self.clock,
        )

    def close(self) -> None:
        self.ranker.close()

    # preferences

    def get_preferences(self, user_id: str) -> MatchingPreferences:
        return self.preference_store.get(_require_user_id(user_id))

    def _update(self, user_id: str, fields: Mapping[str, Any], allowed: frozenset[str]) -> MatchingPreferences:
        user_id = _require_user_id(user_id)
        if not isinstance(fields, Mapping):
            raise ValidationError(reason="invalid_payload", detail="preferences must be an object")
        written: list[str] = []

        # Runs with the user's record locked, so the cross-field rules are
        # checked against exactly what the write merges into.
        def apply(current: MatchingPreferences) -> Mapping[str, Any]:
            result = validate_preferences(fields, current, allowed_fields=allowed)
            result.raise_for_reasons()
            written.extend(sorted(result.cleaned))
            return result.cleaned

        stored = self.preference_store.update(user_id, apply)
        logger.info("[preferences] updated user=%s fields=%s", user_id, written)
        return stored

    def update_preferences(self, user_id: str, fields: Mapping[str, Any]) -> MatchingPreferences:
        return self._update(user_id, fields, BASE_PREFERENCE_FIELDS)

    def update_dating_preferences(self, user_id: str, fields: Mapping[str, Any]) -> MatchingPreferences:
        return self._update(user_id, fields, DATING_PREFERENCE_FIELDS)

    # matching

    def find_matches(
        self,
        user_id: str,
        intent: str | None = None,
        max_matches: int = DEFAULT_MAX_MATCHES,
    ) -> RankingResult:
        return self.ranker.find_best_matches(user_id, intent or DEFAULT_QUEUE_INTENT, max_matches)

    def get_match_history(
        self,
        user_id: str,
        limit: int = HISTORY_DEFAULT_LIMIT,
        offset: int = 0,
    ) -> dict[str, Any]:
        user_id = _require_user_id(user_id)
        if isinstance(limit, bool) or not isinstance(limit, int) or not (1 <= limit <= HISTORY_MAX_LIMIT):
            raise ValidationError(reason="limit_out_of_range", detail=f"limit must be between 1 and {HISTORY_MAX_LIMIT}")
        if isinstance(offset, bool) or not isinstance(offset, int) or offset < 0:
            raise ValidationError(reason="offset_negative", detail="offset must be >= 0")

        attempts = self.attempt_store.history(user_id, limit, offset)
        total = self.attempt_store.count_for_user(user_id)
        return {
            "matches": [a.to_dict() for a in attempts],
            "pagination": {"limit": limit, "offset": offset, "total": total},
        }

    def get_matching_stats(self, now: datetime | None = None) -> dict[str, Any]:
        now = now or self.clock()
        midnight = now.astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
        return self.attempt_store.stats(since=midnight)

    # queue

    def join_queue(self, user_id: str, intent: str | None, profile: Mapping[str, Any] | None = None) -> QueueEntry:
        user_id = _require_user_id(user_id)
        queue_intent = validate_intent(intent)
        candidate_profile = validate_profile(profile)
        now = self.clock()
        entry = self.queue_store.join(
            QueueEntry(
                id=str(uuid.uuid4()),
                user_id=user_id,
                status=QueueStatus.WAITING,
                intent=queue_intent,
                joined_at=now,
                expires_at=now + self.queue_ttl,
                profile=candidate_profile,
            )
        )
        logger.info("[queue] join user=%s intent=%s", user_id, queue_intent.value)
        return entry

    def leave_queue(self, user_id: str) -> dict[str, Any]:
        user_id = _require_user_id(user_id)
        now = self.clock()
        entry = self.queue_store.get_waiting(user_id)
        if entry is None:
            return {"left": False}
        if transition_queue_status(entry.status, "leave", now, entry.expires_at) != QueueStatus.LEFT:
            return {"left": False}
        left = self.queue_store.leave(user_id, now)
        logger.info("[queue] leave user=%s left=%s", user_id, left is not None)
        return {"left": left is not None}

    def get_queue_status(self, user_id: str) -> dict[str, Any]:
        user_id = _require_user_id(user_id)
        now = self.clock()
        entry = self.queue_store.get_waiting(user_id)
        if entry is not None and transition_queue_status(entry.status, "expire", now, entry.expires_at) != QueueStatus.WAITING:
            entry = None
        position, total = self.queue_store.queue_position(user_id)
        if entry is None:
            return {"inQueue": False, "position": None, "totalInQueue": total, "joinedAt": None, "intent": None}
        return {
            "inQueue": True,
            "position": position,
            "totalInQueue": total,
            "joinedAt": entry.joined_at.isoformat(),
            "intent": entry.intent.value,
            "expiresAt": entry.expires_at.isoformat() if entry.expires_at else None,
        }

    def get_queue_stats(self) -> dict[str, Any]:
        stats = dict(self.queue_store.stats())
        stats["totalMatchesToday"] = self.get_matching_stats()["matchesToday"]
        return stats

    def expire_stale_entries(self) -> int:
        expired = self.queue_store.expire_stale(self.clock())
        if expired:
            logger.info("[queue] expired stale entries count=%d", expired)
        return expired

    def process_queue(self) -> dict[str, Any]:
        """Pair WAITING users within each intent and move both sides to MATCHED.

        Per intent, up to ``queue_batch_size`` of the oldest live entries are
        taken. Women go first, then non-binary and unspecified users, then men,
        each group in join order. Every unpaired user is offered the best
        unpaired user after them; the pair is kept when the score reaches
        ``queue_match_min_score``.
        """
        now = self.clock()
        pairs: list[dict[str, Any]] = []
        for intent in QueueIntent:
            entries = self.queue_store.list_waiting(intent, "", self.queue_batch_size, now)
            if len(entries) < 2:
                continue
            pairs.extend(self._pair_intent_group(intent, entries, now))
        logger.info("[queue] pairing pass pairs=%d", len(pairs))
        return {"pairs": len(pairs), "matches": pairs}

    def _pair_intent_group(self, intent: QueueIntent, entries: list[QueueEntry], now: datetime) -> list[dict[str, Any]]:
        ordered = sorted(entries, key=lambda e: _PAIRING_PRIORITY.get(e.profile.gender, 1))
        prefs = dict(zip([e.user_id for e in ordered], self.ranker.load_preferences([e.user_id for e in ordered])))
        paired: set[str] = set()
        out: list[dict[str, Any]] = []

        for i, entry in enumerate(ordered):
            if entry.user_id in paired:
                continue
            rest = [e for e in ordered[i + 1 :] if e.user_id not in paired]
            if not rest:
                break
            seeker = MatchSubject(preferences=prefs[entry.user_id], profile=entry.profile)
            scores = self.ranker.score(seeker, [MatchSubject(preferences=prefs[e.user_id], profile=e.profile) for e in rest], now)
            best_id, best = rank_scored([(e.user_id, s) for e, s in zip(rest, scores)], 1)[0]
            if best.total_score < self.queue_match_min_score:
                continue

            partner = next(e for e in rest if e.user_id == best_id)
            if any(transition_queue_status(e.status, "match", now, e.expires_at) != QueueStatus.MATCHED for e in (entry, partner)):
                continue
            if not self.queue_store.mark_matched([entry.user_id, best_id], now):
                logger.info("[queue] pair skipped user1=%s user2=%s: entry no longer waiting", entry.user_id, best_id)
                continue

            attempt = self.attempt_store.insert(
                MatchAttempt(
                    id=str(uuid.uuid4()),
                    user1_id=entry.user_id,
                    user2_id=best_id,
                    score=best,
                    algorithm=ALGORITHM_VERSION,
                    metadata={"intent": intent.value, "source": "queue", "timestamp": now.isoformat()},
                    created_at=now,
                    status=MatchStatus.PENDING,
                )
            )
            paired.update((entry.user_id, best_id))
            logger.info(
                "[queue] matched user1=%s user2=%s score=%.4f attempt=%s",
                entry.user_id,
                best_id,
                best.total_score,
                attempt.id,
            )
            out.append(
                {
                    "user1Id": entry.user_id,
                    "user2Id": best_id,
                    "matchAttemptId": attempt.id,
                    "intent": intent.value,
                    "totalScore": round(best.total_score, 4),
                }
            )
        return out
