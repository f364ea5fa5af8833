import json
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Mapping

from sqlalchemy import text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.exc import SQLAlchemyError

from matchqueue.config import STORE_TIMEOUT_SECONDS
from matchqueue.database import SessionLocal
from matchqueue.domain import (
    CandidateProfile,
    MatchAttempt,
    MatchingPreferences,
    MatchStatus,
    QueueEntry,
    QueueIntent,
    QueueStatus,
    ScoreBreakdown,
    default_preferences,
)
from matchqueue.errors import InfrastructureError
from matchqueue.models import MatchAttemptRow, MatchingPreferencesRow, QueueEntryRow

logger = logging.getLogger(__name__)

PREFERENCE_COLUMNS = tuple(
    c.name for c in MatchingPreferencesRow.__table__.columns if c.name not in {"user_id", "created_at", "updated_at"}
)
_JSON_COLUMNS = {c.name for c in MatchingPreferencesRow.__table__.columns if isinstance(c.type, JSONB)}

_QUEUE_COLUMNS = ", ".join(c.name for c in QueueEntryRow.__table__.columns)

ATTEMPT_COLUMNS = tuple(c.name for c in MatchAttemptRow.__table__.columns)
_ATTEMPT_CASTS = {"id": "uuid", "metadata": "jsonb"}
_ATTEMPT_VALUES = ", ".join(
    f"CAST(:{col} AS {_ATTEMPT_CASTS[col]})" if col in _ATTEMPT_CASTS else f":{col}" for col in ATTEMPT_COLUMNS
)
_ATTEMPT_INSERT_SQL = (
    f"INSERT INTO match_attempt ({', '.join(ATTEMPT_COLUMNS)}) VALUES ({_ATTEMPT_VALUES}) ON CONFLICT (id) DO NOTHING"
)


@contextmanager
def _store_session(session_factory, timeout_seconds: float | None, operation: str, target_id: str | None):
    try:
        with session_factory() as db:
            if timeout_seconds:
                # SET does not accept bind parameters.
                db.execute(text(f"SET LOCAL statement_timeout = {int(timeout_seconds * 1000)}"))
            yield db
    except SQLAlchemyError as exc:
        logger.error("[store] %s failed target=%s error=%s", operation, target_id, exc.__class__.__name__)
        raise InfrastructureError(operation, target_id) from exc


def _json_list(value: Any) -> list[Any]:
    if isinstance(value, str):
        value = json.loads(value)
    return list(value or [])


def _prefs_from_row(row: Mapping[str, Any]) -> MatchingPreferences:
    fields: dict[str, Any] = {}
    for col in PREFERENCE_COLUMNS:
        if col not in row:
            continue
        value = row[col]
        if col in _JSON_COLUMNS:
            value = _json_list(value)
        elif value is None and col not in {"ethnicity", "preferred_min_age", "preferred_max_age", "premium_expiry"}:
            continue
        fields[col] = value
    return default_preferences(str(row["user_id"])).merged(fields)


def _entry_from_row(row: Mapping[str, Any]) -> QueueEntry:
    profile = row.get("profile") or {}
    if isinstance(profile, str):
        profile = json.loads(profile)
    return QueueEntry(
        id=str(row["id"]),
        user_id=str(row["user_id"]),
        status=QueueStatus(row["status"]),
        intent=QueueIntent(row["intent"]),
        joined_at=row["joined_at"],
        expires_at=row.get("expires_at"),
        profile=CandidateProfile.from_dict(profile),
        left_at=row.get("left_at"),
    )


def _attempt_from_row(row: Mapping[str, Any]) -> MatchAttempt:
    metadata = row.get("metadata") or {}
    if isinstance(metadata, str):
        metadata = json.loads(metadata)
    return MatchAttempt(
        id=str(row["id"]),
        user1_id=str(row["user1_id"]),
        user2_id=str(row["user2_id"]),
        score=ScoreBreakdown(
            total_score=float(row["total_score"]),
            age=float(row["age_score"]),
            location=float(row["location_score"]),
            interest=float(row["interest_score"]),
            language=float(row["language_score"]),
            ethnicity=float(row["ethnicity_score"]),
            gender_compat=float(row["gender_compat_score"]),
            relationship_intent=float(row["relationship_intent_score"]),
            family_plans=float(row["family_plans_score"]),
            religion=float(row["religion_score"]),
            education=float(row["education_score"]),
            political=float(row["political_score"]),
            lifestyle=float(row["lifestyle_score"]),
            premium_bonus=float(row["premium_bonus"] or 0.0),
        ),
        algorithm=str(row["algorithm"]),
        metadata=metadata,
        created_at=row["created_at"],
        status=MatchStatus(row.get("status") or "PENDING"),
    )


class SqlPreferenceStore:
    def __init__(self, session_factory=SessionLocal, timeout_seconds: float | None = STORE_TIMEOUT_SECONDS):
        self._session_factory = session_factory
        self._timeout = timeout_seconds

    def get(self, user_id: str) -> MatchingPreferences:
        with _store_session(self._session_factory, self._timeout, "preferences.get", user_id) as db:
            row = db.execute(
                text("SELECT * FROM matching_preferences WHERE user_id = :user_id"),
                {"user_id": user_id},
            ).mappings().first()
        if not row:
            return default_preferences(user_id)
        return _prefs_from_row(row)

    def update(
        self,
        user_id: str,
        apply: Callable[[MatchingPreferences], Mapping[str, Any]],
    ) -> MatchingPreferences:
        """Lock the user's row, pass the current record to ``apply`` and write the
        fields it returns, all in one transaction.

        A missing row is created with column defaults first so there is always
        something to lock. If ``apply`` raises, nothing is committed.
        """
        with _store_session(self._session_factory, self._timeout, "preferences.update", user_id) as db:
            db.execute(
                text("INSERT INTO matching_preferences (user_id) VALUES (:user_id) ON CONFLICT (user_id) DO NOTHING"),
                {"user_id": user_id},
            )
            row = db.execute(
                text("SELECT * FROM matching_preferences WHERE user_id = :user_id FOR UPDATE"),
                {"user_id": user_id},
            ).mappings().first()
            current = _prefs_from_row(row) if row else default_preferences(user_id)

            fields = apply(current)
            unknown = sorted(set(fields) - set(PREFERENCE_COLUMNS))
            if unknown:
                raise ValueError(f"unknown preference columns: {unknown}")

            params: dict[str, Any] = {"user_id": user_id}
            assignments = []
            for col in sorted(fields):
                value = fields[col]
                if col in _JSON_COLUMNS:
                    params[col] = json.dumps(sorted(v.value if hasattr(v, "value") else v for v in (value or [])))
                    assignments.append(f"{col} = CAST(:{col} AS jsonb)")
                else:
                    params[col] = value
                    assignments.append(f"{col} = :{col}")
            assignments.append("updated_at = NOW()")
            set_sql = ", ".join(assignments)

            row = db.execute(
                text(
                    f"""
                    UPDATE matching_preferences
                    SET {set_sql}
                    WHERE user_id = :user_id
                    RETURNING *
                    """
                ),
                params,
            ).mappings().first()
            db.commit()
        return _prefs_from_row(row)


class SqlQueueStore:
    def __init__(self, session_factory=SessionLocal, timeout_seconds: float | None = STORE_TIMEOUT_SECONDS):
        self._session_factory = session_factory
        self._timeout = timeout_seconds

    def join(self, entry: QueueEntry) -> QueueEntry:
        with _store_session(self._session_factory, self._timeout, "queue.join", entry.user_id) as db:
            row = db.execute(
                text(
                    f"""
                    INSERT INTO queue_entry (id, user_id, status, intent, profile, joined_at, expires_at)
                    VALUES (CAST(:id AS uuid), :user_id, 'WAITING', :intent, CAST(:profile AS jsonb), :joined_at, :expires_at)
                    ON CONFLICT (user_id) WHERE status = 'WAITING'
                    DO UPDATE SET intent = EXCLUDED.intent, profile = EXCLUDED.profile, expires_at = EXCLUDED.expires_at
                    RETURNING {_QUEUE_COLUMNS}
                    """
                ),
                {
                    "id": entry.id,
                    "user_id": entry.user_id,
                    "intent": entry.intent.value,
                    "profile": json.dumps(entry.profile.to_dict()),
                    "joined_at": entry.joined_at,
                    "expires_at": entry.expires_at,
                },
            ).mappings().first()
            db.commit()
        return _entry_from_row(row)

    def leave(self, user_id: str, now: datetime) -> QueueEntry | None:
        with _store_session(self._session_factory, self._timeout, "queue.leave", user_id) as db:
            row = db.execute(
                text(
                    f"""
                    UPDATE queue_entry
                    SET status = 'LEFT', left_at = :now
                    WHERE user_id = :user_id
                      AND status = 'WAITING'
                    RETURNING {_QUEUE_COLUMNS}
                    """
                ),
                {"user_id": user_id, "now": now},
            ).mappings().first()
            db.commit()
        return _entry_from_row(row) if row else None

    def get_waiting(self, user_id: str) -> QueueEntry | None:
        with _store_session(self._session_factory, self._timeout, "queue.get_waiting", user_id) as db:
            row = db.execute(
                text(f"SELECT {_QUEUE_COLUMNS} FROM queue_entry WHERE user_id = :user_id AND status = 'WAITING'"),
                {"user_id": user_id},
            ).mappings().first()
        return _entry_from_row(row) if row else None

    def list_waiting(self, intent: QueueIntent, exclude_user_id: str, limit: int, now: datetime) -> list[QueueEntry]:
        with _store_session(self._session_factory, self._timeout, "queue.list_waiting", exclude_user_id) as db:
            rows = db.execute(
                text(
                    f"""
                    SELECT {_QUEUE_COLUMNS}
                    FROM queue_entry
                    WHERE status = 'WAITING'
                      AND intent = :intent
                      AND user_id <> :exclude_user_id
                      AND (expires_at IS NULL OR expires_at > :now)
                    ORDER BY joined_at ASC, user_id ASC
                    LIMIT :limit
                    """
                ),
                {"intent": intent.value, "exclude_user_id": exclude_user_id, "now": now, "limit": limit},
            ).mappings().all()
        return [_entry_from_row(r) for r in rows]

    def queue_position(self, user_id: str) -> tuple[int | None, int]:
        with _store_session(self._session_factory, self._timeout, "queue.position", user_id) as db:
            row = db.execute(
                text(
                    """
                    WITH me AS (
                      SELECT joined_at, user_id
                      FROM queue_entry
                      WHERE user_id = :user_id AND status = 'WAITING'
                    )
                    SELECT
                      (SELECT COUNT(1)
                         FROM queue_entry q, me
                        WHERE q.status = 'WAITING'
                          AND (q.joined_at, q.user_id) <= (me.joined_at, me.user_id)) AS position,
                      (SELECT COUNT(1) FROM queue_entry WHERE status = 'WAITING') AS total
                    """
                ),
                {"user_id": user_id},
            ).mappings().first() or {}
        position = int(row.get("position") or 0)
        return (position or None), int(row.get("total") or 0)

    def stats(self) -> dict[str, Any]:
        with _store_session(self._session_factory, self._timeout, "queue.stats", None) as db:
            by_intent = db.execute(
                text("SELECT intent, COUNT(1) AS c FROM queue_entry WHERE status = 'WAITING' GROUP BY intent"),
            ).mappings().all()
            by_gender = db.execute(
                text(
                    """
                    SELECT COALESCE(profile->>'gender', 'UNKNOWN') AS gender, COUNT(1) AS c
                    FROM queue_entry
                    WHERE status = 'WAITING'
                    GROUP BY 1
                    """
                ),
            ).mappings().all()
        intents = {str(r["intent"]): int(r["c"]) for r in by_intent}
        return {
            "totalWaiting": sum(intents.values()),
            "byIntent": intents,
            "byGender": {str(r["gender"]): int(r["c"]) for r in by_gender},
        }

    def expire_stale(self, now: datetime) -> int:
        with _store_session(self._session_factory, self._timeout, "queue.expire_stale", None) as db:
            result = db.execute(
                text(
                    """
                    UPDATE queue_entry
                    SET status = 'LEFT', left_at = :now
                    WHERE status = 'WAITING'
                      AND expires_at IS NOT NULL
                      AND expires_at <= :now
                    """
                ),
                {"now": now},
            )
            db.commit()
        return int(result.rowcount or 0)

    def mark_matched(self, user_ids: list[str], now: datetime) -> bool:
        ids = sorted(set(user_ids))
        with _store_session(self._session_factory, self._timeout, "queue.mark_matched", ",".join(ids)) as db:
            locked = db.execute(
                text(
                    """
                    SELECT user_id
                    FROM queue_entry
                    WHERE user_id = ANY(:user_ids)
                      AND status = 'WAITING'
                      AND (expires_at IS NULL OR expires_at > :now)
                    ORDER BY user_id
                    FOR UPDATE
                    """
                ),
                {"user_ids": ids, "now": now},
            ).mappings().all()
            if len(locked) != len(ids):
                return False
            db.execute(
                text("UPDATE queue_entry SET status = 'MATCHED' WHERE user_id = ANY(:user_ids) AND status = 'WAITING'"),
                {"user_ids": ids},
            )
            db.commit()
        return True


class SqlMatchAttemptStore:
    def __init__(self, session_factory=SessionLocal, timeout_seconds: float | None = STORE_TIMEOUT_SECONDS):
        self._session_factory = session_factory
        self._timeout = timeout_seconds

    def insert(self, attempt: MatchAttempt) -> MatchAttempt:
        s = attempt.score
        with _store_session(self._session_factory, self._timeout, "match_attempt.insert", attempt.user2_id) as db:
            db.execute(
                text(_ATTEMPT_INSERT_SQL),
                {
                    "id": attempt.id,
                    "user1_id": attempt.user1_id,
                    "user2_id": attempt.user2_id,
                    "total_score": s.total_score,
                    **{f"{name}_score": value for name, value in s.subscores().items()},
                    "premium_bonus": s.premium_bonus,
                    "algorithm": attempt.algorithm,
                    "metadata": json.dumps(attempt.metadata),
                    "status": attempt.status.value,
                    "created_at": attempt.created_at,
                },
            )
            db.commit()
        return attempt

    def history(self, user_id: str, limit: int, offset: int) -> list[MatchAttempt]:
        with _store_session(self._session_factory, self._timeout, "match_attempt.history", user_id) as db:
            rows = db.execute(
                text(
                    """
                    SELECT *
                    FROM match_attempt
                    WHERE user1_id = :user_id OR user2_id = :user_id
                    ORDER BY created_at DESC, id ASC
                    LIMIT :limit OFFSET :offset
                    """
                ),
                {"user_id": user_id, "limit": limit, "offset": offset},
            ).mappings().all()
        return [_attempt_from_row(r) for r in rows]

    def count_for_user(self, user_id: str) -> int:
        with _store_session(self._session_factory, self._timeout, "match_attempt.count", user_id) as db:
            row = db.execute(
                text("SELECT COUNT(1) AS c FROM match_attempt WHERE user1_id = :user_id OR user2_id = :user_id"),
                {"user_id": user_id},
            ).mappings().first() or {}
        return int(row.get("c") or 0)

    def stats(self, since: datetime) -> dict[str, Any]:
        with _store_session(self._session_factory, self._timeout, "match_attempt.stats", None) as db:
            row = db.execute(
                text(
                    """
                    SELECT
                      COUNT(1) AS total_matches,
                      SUM(CASE WHEN created_at >= :since THEN 1 ELSE 0 END) AS matches_today,
                      AVG(total_score) AS avg_match_score,
                      SUM(CASE WHEN status = 'ACCEPTED' THEN 1 ELSE 0 END) AS successful_matches
                    FROM match_attempt
                    """
                ),
                {"since": since},
            ).mappings().first() or {}
        return {
            "totalMatches": int(row.get("total_matches") or 0),
            "matchesToday": int(row.get("matches_today") or 0),
            "avgMatchScore": round(float(row.get("avg_match_score") or 0.0), 4),
            "successfulMatches": int(row.get("successful_matches") or 0),
        }
