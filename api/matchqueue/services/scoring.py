from __future__ import annotations

import math
from concurrent.futures import Executor
from datetime import datetime
from typing import Any, Collection, Iterable

from ..config import DEFAULT_MATCHING_CONFIG
from ..domain import MatchingPreferences, MatchSubject, ScoreBreakdown

EARTH_RADIUS_KM = 6371.0


def _clip01(value: float) -> float:
    return max(0.0, min(1.0, value))


def _cfg(cfg: dict[str, Any] | None, key: str) -> float:
    if cfg and key in cfg:
        return float(cfg[key])
    return float(DEFAULT_MATCHING_CONFIG[key])


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def _membership(value: Any, preferred: Collection[Any]) -> float:
    # An empty preferred set means "no preference".
    if not preferred:
        return 1.0
    if value is None:
        return 0.0
    return 1.0 if value in preferred else 0.0


def _any_membership(values: Iterable[Any], preferred: Collection[Any]) -> float:
    if not preferred:
        return 1.0
    return 1.0 if any(v in preferred for v in values) else 0.0


def _overlap(values: Collection[str], preferred: Collection[str]) -> float:
    if not preferred:
        return 1.0
    return len(set(values) & set(preferred)) / len(preferred)


def age_window(prefs: MatchingPreferences) -> tuple[int, int]:
    if prefs.preferred_min_age is not None and prefs.preferred_max_age is not None:
        return prefs.preferred_min_age, prefs.preferred_max_age
    return prefs.min_age, prefs.max_age


def _age_score(prefs: MatchingPreferences, age: int | None, cfg: dict[str, Any] | None) -> float:
    if age is None:
        return _cfg(cfg, "UNKNOWN_AGE_SCORE")
    low, high = age_window(prefs)
    if low <= age <= high:
        return 1.0
    outside = low - age if age < low else age - high
    decay = _cfg(cfg, "AGE_DECAY_YEARS")
    if decay <= 0:
        return 0.0
    return max(0.0, 1.0 - outside / decay)


def _location_score(seeker: MatchSubject, candidate: MatchSubject) -> float:
    max_radius = float(seeker.preferences.max_radius or 0.0)
    s, c = seeker.profile, candidate.profile
    if max_radius <= 0:
        return 0.0
    if s.latitude is None or s.longitude is None or c.latitude is None or c.longitude is None:
        return 0.0
    distance = haversine_km(s.latitude, s.longitude, c.latitude, c.longitude)
    return 1.0 - min(distance, max_radius) / max_radius


def _lifestyle_score(prefs: MatchingPreferences, candidate: MatchSubject) -> float:
    profile = candidate.profile
    parts = (
        _membership(profile.exercise, prefs.preferred_exercise_habits),
        _membership(profile.smoking, prefs.preferred_smoking_habits),
        _membership(profile.drinking, prefs.preferred_drinking_habits),
    )
    return sum(parts) / len(parts)


def _premium_bonus(candidate_prefs: MatchingPreferences, now: datetime, cfg: dict[str, Any] | None) -> float:
    if not candidate_prefs.is_premium_user or candidate_prefs.premium_expiry is None:
        return 0.0
    if candidate_prefs.premium_expiry <= now:
        return 0.0
    cap = max(0.0, _cfg(cfg, "PREMIUM_BONUS_CAP"))
    return min(cap, max(0.0, _cfg(cfg, "PREMIUM_BONUS")))


def compute_compatibility(
    seeker: MatchSubject,
    candidate: MatchSubject,
    *,
    now: datetime,
    cfg: dict[str, Any] | None = None,
) -> ScoreBreakdown:
    """Score ``candidate`` against the preferences of ``seeker``.

    Only the seeker's preferences are consulted; the candidate's own
    preferences contribute its interests, languages, ethnicity and premium
    status. Every subscore lies in [0, 1] and the total is clipped to [0, 1]
    because user-supplied weights are only loosely bounded.
    """
    prefs = seeker.preferences
    cand_prefs = candidate.preferences
    profile = candidate.profile

    age = _age_score(prefs, profile.age, cfg)
    location = _location_score(seeker, candidate)
    interest = _overlap(cand_prefs.interests, prefs.preferred_interests)
    language = _overlap(cand_prefs.languages, prefs.preferred_languages)
    ethnicity = _membership(cand_prefs.ethnicity, prefs.preferred_ethnicities)
    gender_compat = _membership(profile.gender, prefs.preferred_genders)
    relationship_intent = _any_membership(profile.relationship_intents, prefs.preferred_relationship_intents)
    family_plans = _membership(profile.family_plans, prefs.preferred_family_plans)
    religion = _membership(profile.religion, prefs.preferred_religions)
    education = _membership(profile.education_level, prefs.preferred_education_levels)
    political = _membership(profile.political_view, prefs.preferred_political_views)
    lifestyle = _lifestyle_score(prefs, candidate)
    premium_bonus = _premium_bonus(cand_prefs, now, cfg)

    weighted = (
        prefs.age_weight * age
        + prefs.location_weight * location
        + prefs.interest_weight * interest
        + prefs.language_weight * language
        + prefs.gender_weight * gender_compat
        + prefs.relationship_intent_weight * relationship_intent
        + prefs.lifestyle_weight * lifestyle
        + prefs.ethnicity_importance * ethnicity
        + _cfg(cfg, "FAMILY_PLANS_W") * family_plans
        + _cfg(cfg, "RELIGION_W") * religion
        + _cfg(cfg, "EDUCATION_W") * education
        + _cfg(cfg, "POLITICAL_W") * political
    )
    total = _clip01(weighted + premium_bonus)

    return ScoreBreakdown(
        total_score=round(total, 6),
        age=round(_clip01(age), 6),
        location=round(_clip01(location), 6),
        interest=round(_clip01(interest), 6),
        language=round(_clip01(language), 6),
        ethnicity=round(_clip01(ethnicity), 6),
        gender_compat=round(gender_compat, 6),
        relationship_intent=round(relationship_intent, 6),
        family_plans=round(family_plans, 6),
        religion=round(religion, 6),
        education=round(education, 6),
        political=round(political, 6),
        lifestyle=round(_clip01(lifestyle), 6),
        premium_bonus=round(premium_bonus, 6),
    )


def score_candidates(
    seeker: MatchSubject,
    candidates: list[MatchSubject],
    *,
    now: datetime,
    cfg: dict[str, Any] | None = None,
    executor: Executor | None = None,
) -> list[ScoreBreakdown]:
    if executor is None:
        return [compute_compatibility(seeker, c, now=now, cfg=cfg) for c in candidates]
    return list(executor.map(lambda c: compute_compatibility(seeker, c, now=now, cfg=cfg), candidates))
