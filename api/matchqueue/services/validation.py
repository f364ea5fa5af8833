from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Mapping

from ..config import AGE_MAX, AGE_MIN, BASE_WEIGHT_SUM_MAX, BASE_WEIGHT_SUM_MIN
from ..domain import (
    ENUM_SET_FIELDS,
    STRING_SET_FIELDS,
    CandidateProfile,
    DatingGender,
    EducationLevel,
    FamilyPlans,
    LifestyleHabit,
    MatchingPreferences,
    PoliticalView,
    QueueIntent,
    RelationshipIntent,
    Religion,
    coerce_preference_fields,
    default_preferences,
)
from ..errors import ValidationError

logger = logging.getLogger(__name__)

BASE_PREFERENCE_FIELDS = frozenset(
    {
        "min_age",
        "max_age",
        "max_radius",
        "interests",
        "preferred_interests",
        "languages",
        "preferred_languages",
        "ethnicity",
        "preferred_ethnicities",
        "ethnicity_importance",
        "age_weight",
        "location_weight",
        "interest_weight",
        "language_weight",
    }
)

DATING_PREFERENCE_FIELDS = frozenset(
    {
        *ENUM_SET_FIELDS.keys(),
        "preferred_min_age",
        "preferred_max_age",
        "is_premium_user",
        "premium_expiry",
        "gender_weight",
        "relationship_intent_weight",
        "lifestyle_weight",
    }
)

BASE_WEIGHT_FIELDS = ("age_weight", "location_weight", "interest_weight", "language_weight")
DATING_WEIGHT_FIELDS = ("gender_weight", "relationship_intent_weight", "lifestyle_weight")

PROFILE_ENUM_FIELDS = {
    "gender": DatingGender,
    "family_plans": FamilyPlans,
    "religion": Religion,
    "education_level": EducationLevel,
    "political_view": PoliticalView,
    "exercise": LifestyleHabit,
    "smoking": LifestyleHabit,
    "drinking": LifestyleHabit,
}


@dataclass
class ValidationResult:
    ok: bool
    reasons: list[str] = field(default_factory=list)
    cleaned: dict[str, Any] = field(default_factory=dict)

    def raise_for_reasons(self) -> None:
        if not self.ok:
            raise ValidationError(reason=self.reasons[0], detail="; ".join(self.reasons))


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _is_int(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, float) and value.is_integer()


def _normalize_string_set(value: Any) -> list[str] | None:
    if not isinstance(value, (list, tuple, set, frozenset)):
        return None
    out: list[str] = []
    for item in value:
        if not isinstance(item, str):
            return None
        v = item.strip()
        if v and v not in out:
            out.append(v)
    return sorted(out)


def _normalize_enum_set(value: Any, enum_cls) -> list[str] | None:
    items = _normalize_string_set(value)
    if items is None:
        return None
    allowed = {m.value for m in enum_cls}
    normalized = [v.upper() for v in items]
    if any(v not in allowed for v in normalized):
        return None
    return sorted(set(normalized))


def _parse_timestamp(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _clean_field(key: str, value: Any, reasons: list[str]) -> Any:
    if key in ENUM_SET_FIELDS:
        normalized = _normalize_enum_set(value, ENUM_SET_FIELDS[key])
        if normalized is None:
            reasons.append(f"invalid_{key}")
        return normalized
    if key in STRING_SET_FIELDS:
        normalized = _normalize_string_set(value)
        if normalized is None:
            reasons.append(f"invalid_{key}")
        return normalized
    if key in {"min_age", "max_age", "preferred_min_age", "preferred_max_age"}:
        if value is None and key.startswith("preferred_"):
            return None
        if not _is_int(value):
            reasons.append(f"{key}_out_of_range")
            return None
        return int(value)
    if key == "ethnicity":
        if value is None:
            return None
        if not isinstance(value, str):
            reasons.append("invalid_ethnicity")
            return None
        return value.strip() or None
    if key == "is_premium_user":
        if not isinstance(value, bool):
            reasons.append("invalid_is_premium_user")
        return value
    if key == "premium_expiry":
        if value is None:
            return None
        parsed = _parse_timestamp(value)
        if parsed is None:
            reasons.append("invalid_premium_expiry")
        return parsed
    # remaining fields are numeric: radius, importance and weights
    if not _is_number(value):
        reasons.append(f"invalid_{key}")
        return None
    return float(value)


def _check_age_pair(low: int | None, high: int | None, prefix: str, reasons: list[str]) -> None:
    for name, value in ((f"{prefix}min_age", low), (f"{prefix}max_age", high)):
        if value is not None and not (AGE_MIN <= value <= AGE_MAX):
            reasons.append(f"{name}_out_of_range")
    if low is not None and high is not None and low > high:
        reasons.append(f"{prefix}age_range_inverted")


def validate_preferences(
    update: Mapping[str, Any],
    current: MatchingPreferences | None = None,
    *,
    allowed_fields: frozenset[str] | None = None,
) -> ValidationResult:
    """Validate a partial preferences update.

    Rules are checked against ``current`` with ``update`` applied, so an update
    that only touches ``max_age`` still has to agree with the stored
    ``min_age``. Without ``current`` the documented defaults stand in for every
    field the update leaves unset.
    """
    reasons: list[str] = []
    cleaned: dict[str, Any] = {}
    allowed = allowed_fields or (BASE_PREFERENCE_FIELDS | DATING_PREFERENCE_FIELDS)

    for key, value in update.items():
        if key not in allowed:
            reasons.append(f"unknown_field:{key}")
            continue
        before = len(reasons)
        clean = _clean_field(key, value, reasons)
        if len(reasons) == before:
            cleaned[key] = clean

    if reasons:
        return ValidationResult(ok=False, reasons=reasons)

    base = current or default_preferences("")
    merged = replace(base, **coerce_preference_fields(cleaned))

    _check_age_pair(merged.min_age, merged.max_age, "", reasons)
    _check_age_pair(merged.preferred_min_age, merged.preferred_max_age, "preferred_", reasons)

    if merged.max_radius < 0:
        reasons.append("max_radius_negative")
    if not (0.0 <= merged.ethnicity_importance <= 1.0):
        reasons.append("ethnicity_importance_out_of_range")

    if any(getattr(merged, w) < 0 for w in BASE_WEIGHT_FIELDS + DATING_WEIGHT_FIELDS):
        reasons.append("weight_negative")

    weight_sum = sum(getattr(merged, w) for w in BASE_WEIGHT_FIELDS)
    # tolerance keeps sums such as 0.3+0.4+0.2+0.1 from failing on float noise
    if weight_sum < BASE_WEIGHT_SUM_MIN - 1e-9 or weight_sum > BASE_WEIGHT_SUM_MAX + 1e-9:
        reasons.append("weight_sum_out_of_range")

    if reasons:
        logger.info("[validation] preferences rejected reasons=%s", reasons)
        return ValidationResult(ok=False, reasons=reasons)
    return ValidationResult(ok=True, cleaned=cleaned)


def validate_intent(value: Any) -> QueueIntent:
    raw = str(value or "").strip().upper()
    try:
        return QueueIntent(raw)
    except ValueError:
        raise ValidationError(reason="invalid_intent", detail=f"intent must be one of: {', '.join(i.value for i in QueueIntent)}") from None


def validate_profile(raw: Mapping[str, Any] | None) -> CandidateProfile:
    raw = dict(raw or {})
    unknown = sorted(set(raw) - set(CandidateProfile.__dataclass_fields__))
    if unknown:
        raise ValidationError(reason=f"unknown_field:{unknown[0]}")

    age = raw.get("age")
    if age is not None and (not _is_int(age) or not (AGE_MIN <= int(age) <= AGE_MAX)):
        raise ValidationError(reason="age_out_of_range", detail=f"age must be between {AGE_MIN} and {AGE_MAX}")
    for key, bound in (("latitude", 90.0), ("longitude", 180.0)):
        v = raw.get(key)
        if v is not None and (not _is_number(v) or abs(v) > bound):
            raise ValidationError(reason=f"invalid_{key}")

    for key, enum_cls in PROFILE_ENUM_FIELDS.items():
        v = raw.get(key)
        if v is None:
            continue
        if not isinstance(v, str) or v.strip().upper() not in {m.value for m in enum_cls}:
            raise ValidationError(reason=f"invalid_{key}")
        raw[key] = v.strip().upper()

    intents = raw.get("relationship_intents")
    if intents is not None:
        normalized = _normalize_enum_set(intents, RelationshipIntent)
        if normalized is None:
            raise ValidationError(reason="invalid_relationship_intents")
        raw["relationship_intents"] = normalized

    return CandidateProfile.from_dict(raw)
