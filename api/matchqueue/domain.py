from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Mapping

from .config import DEFAULT_PREFERENCES


class DatingGender(str, Enum):
    MAN = "MAN"
    WOMAN = "WOMAN"
    NONBINARY = "NONBINARY"


class RelationshipIntent(str, Enum):
    LONG_TERM = "LONG_TERM"
    CASUAL_DATES = "CASUAL_DATES"
    MARRIAGE = "MARRIAGE"
    INTIMACY = "INTIMACY"
    INTIMACY_NO_COMMITMENT = "INTIMACY_NO_COMMITMENT"
    LIFE_PARTNER = "LIFE_PARTNER"
    ETHICAL_NON_MONOGAMY = "ETHICAL_NON_MONOGAMY"


class FamilyPlans(str, Enum):
    HAS_KIDS_WANTS_MORE = "HAS_KIDS_WANTS_MORE"
    HAS_KIDS_DOESNT_WANT_MORE = "HAS_KIDS_DOESNT_WANT_MORE"
    DOESNT_HAVE_KIDS_WANTS_KIDS = "DOESNT_HAVE_KIDS_WANTS_KIDS"
    DOESNT_HAVE_KIDS_DOESNT_WANT_KIDS = "DOESNT_HAVE_KIDS_DOESNT_WANT_KIDS"
    NOT_SURE_YET = "NOT_SURE_YET"


class Religion(str, Enum):
    AGNOSTIC = "AGNOSTIC"
    ATHEIST = "ATHEIST"
    BUDDHIST = "BUDDHIST"
    CATHOLIC = "CATHOLIC"
    CHRISTIAN = "CHRISTIAN"
    HINDU = "HINDU"
    JEWISH = "JEWISH"
    MUSLIM = "MUSLIM"
    SPIRITUAL = "SPIRITUAL"
    OTHER = "OTHER"


class EducationLevel(str, Enum):
    HIGH_SCHOOL = "HIGH_SCHOOL"
    IN_COLLEGE = "IN_COLLEGE"
    UNDERGRADUATE = "UNDERGRADUATE"
    IN_GRAD_SCHOOL = "IN_GRAD_SCHOOL"
    POSTGRADUATE = "POSTGRADUATE"


class PoliticalView(str, Enum):
    LIBERAL = "LIBERAL"
    MODERATE = "MODERATE"
    CONSERVATIVE = "CONSERVATIVE"
    APOLITICAL = "APOLITICAL"
    OTHER = "OTHER"


class LifestyleHabit(str, Enum):
    FREQUENTLY = "FREQUENTLY"
    SOCIALLY = "SOCIALLY"
    RARELY = "RARELY"
    NEVER = "NEVER"


class QueueStatus(str, Enum):
    WAITING = "WAITING"
    MATCHED = "MATCHED"
    LEFT = "LEFT"


class QueueIntent(str, Enum):
    CASUAL = "CASUAL"
    FRIENDS = "FRIENDS"
    SERIOUS = "SERIOUS"
    NETWORKING = "NETWORKING"


class MatchStatus(str, Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


# preferred-set field -> enumeration its members must belong to
ENUM_SET_FIELDS: dict[str, type[Enum]] = {
    "preferred_genders": DatingGender,
    "preferred_relationship_intents": RelationshipIntent,
    "preferred_family_plans": FamilyPlans,
    "preferred_religions": Religion,
    "preferred_education_levels": EducationLevel,
    "preferred_political_views": PoliticalView,
    "preferred_exercise_habits": LifestyleHabit,
    "preferred_smoking_habits": LifestyleHabit,
    "preferred_drinking_habits": LifestyleHabit,
}

STRING_SET_FIELDS = ("interests", "preferred_interests", "languages", "preferred_languages", "preferred_ethnicities")


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass(frozen=True)
class MatchingPreferences:
    user_id: str
    min_age: int = DEFAULT_PREFERENCES["min_age"]
    max_age: int = DEFAULT_PREFERENCES["max_age"]
    max_radius: float = DEFAULT_PREFERENCES["max_radius"]
    interests: frozenset[str] = frozenset()
    preferred_interests: frozenset[str] = frozenset()
    languages: frozenset[str] = frozenset()
    preferred_languages: frozenset[str] = frozenset()
    ethnicity: str | None = None
    preferred_ethnicities: frozenset[str] = frozenset()
    ethnicity_importance: float = DEFAULT_PREFERENCES["ethnicity_importance"]
    age_weight: float = DEFAULT_PREFERENCES["age_weight"]
    location_weight: float = DEFAULT_PREFERENCES["location_weight"]
    interest_weight: float = DEFAULT_PREFERENCES["interest_weight"]
    language_weight: float = DEFAULT_PREFERENCES["language_weight"]
    preferred_genders: frozenset[DatingGender] = frozenset()
    preferred_relationship_intents: frozenset[RelationshipIntent] = frozenset()
    preferred_family_plans: frozenset[FamilyPlans] = frozenset()
    preferred_religions: frozenset[Religion] = frozenset()
    preferred_education_levels: frozenset[EducationLevel] = frozenset()
    preferred_political_views: frozenset[PoliticalView] = frozenset()
    preferred_exercise_habits: frozenset[LifestyleHabit] = frozenset()
    preferred_smoking_habits: frozenset[LifestyleHabit] = frozenset()
    preferred_drinking_habits: frozenset[LifestyleHabit] = frozenset()
    preferred_min_age: int | None = None
    preferred_max_age: int | None = None
    is_premium_user: bool = False
    premium_expiry: datetime | None = None
    gender_weight: float = DEFAULT_PREFERENCES["gender_weight"]
    relationship_intent_weight: float = DEFAULT_PREFERENCES["relationship_intent_weight"]
    lifestyle_weight: float = DEFAULT_PREFERENCES["lifestyle_weight"]

    def merged(self, fields: Mapping[str, Any]) -> MatchingPreferences:
        return replace(self, **coerce_preference_fields(fields))

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for name in self.__dataclass_fields__:
            value = getattr(self, name)
            if isinstance(value, frozenset):
                value = sorted(v.value if isinstance(v, Enum) else v for v in value)
            elif isinstance(value, datetime):
                value = value.isoformat()
            out[_camel(name)] = value
        return out


def default_preferences(user_id: str) -> MatchingPreferences:
    return MatchingPreferences(user_id=user_id)


def coerce_preference_fields(fields: Mapping[str, Any]) -> dict[str, Any]:
    """Convert already-validated raw values into the dataclass field types."""
    out: dict[str, Any] = {}
    for key, value in fields.items():
        if key in ENUM_SET_FIELDS:
            enum_cls = ENUM_SET_FIELDS[key]
            out[key] = frozenset(enum_cls(v) for v in (value or []))
        elif key in STRING_SET_FIELDS:
            out[key] = frozenset(str(v) for v in (value or []))
        elif key == "premium_expiry" and isinstance(value, str):
            out[key] = datetime.fromisoformat(value.replace("Z", "+00:00"))
        else:
            out[key] = value
    return out


@dataclass(frozen=True)
class CandidateProfile:
    age: int | None = None
    latitude: float | None = None
    longitude: float | None = None
    gender: DatingGender | None = None
    relationship_intents: frozenset[RelationshipIntent] = frozenset()
    family_plans: FamilyPlans | None = None
    religion: Religion | None = None
    education_level: EducationLevel | None = None
    political_view: PoliticalView | None = None
    exercise: LifestyleHabit | None = None
    smoking: LifestyleHabit | None = None
    drinking: LifestyleHabit | None = None

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any] | None) -> CandidateProfile:
        raw = raw or {}

        def opt(enum_cls, key):
            value = raw.get(key)
            return enum_cls(value) if value else None

        return cls(
            age=int(raw["age"]) if raw.get("age") is not None else None,
            latitude=float(raw["latitude"]) if raw.get("latitude") is not None else None,
            longitude=float(raw["longitude"]) if raw.get("longitude") is not None else None,
            gender=opt(DatingGender, "gender"),
            relationship_intents=frozenset(RelationshipIntent(v) for v in (raw.get("relationship_intents") or [])),
            family_plans=opt(FamilyPlans, "family_plans"),
            religion=opt(Religion, "religion"),
            education_level=opt(EducationLevel, "education_level"),
            political_view=opt(PoliticalView, "political_view"),
            exercise=opt(LifestyleHabit, "exercise"),
            smoking=opt(LifestyleHabit, "smoking"),
            drinking=opt(LifestyleHabit, "drinking"),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for name in self.__dataclass_fields__:
            value = getattr(self, name)
            if isinstance(value, frozenset):
                value = sorted(v.value for v in value)
            elif isinstance(value, Enum):
                value = value.value
            out[name] = value
        return out


@dataclass(frozen=True)
class QueueEntry:
    id: str
    user_id: str
    status: QueueStatus
    intent: QueueIntent
    joined_at: datetime
    expires_at: datetime | None = None
    profile: CandidateProfile = field(default_factory=CandidateProfile)
    left_at: datetime | None = None


@dataclass(frozen=True)
class MatchSubject:
    preferences: MatchingPreferences
    profile: CandidateProfile = field(default_factory=CandidateProfile)

    @property
    def user_id(self) -> str:
        return self.preferences.user_id


SUBSCORE_FIELDS = (
    "age",
    "location",
    "interest",
    "language",
    "ethnicity",
    "gender_compat",
    "relationship_intent",
    "family_plans",
    "religion",
    "education",
    "political",
    "lifestyle",
)


@dataclass(frozen=True)
class ScoreBreakdown:
    total_score: float
    age: float
    location: float
    interest: float
    language: float
    ethnicity: float
    gender_compat: float
    relationship_intent: float
    family_plans: float
    religion: float
    education: float
    political: float
    lifestyle: float
    premium_bonus: float

    def subscores(self) -> dict[str, float]:
        return {name: getattr(self, name) for name in SUBSCORE_FIELDS}

    def as_percentages(self) -> dict[str, int]:
        out = {_camel(name): round(value * 100) for name, value in self.subscores().items()}
        out["premiumBonus"] = round(self.premium_bonus * 100)
        return out


@dataclass(frozen=True)
class MatchAttempt:
    id: str
    user1_id: str
    user2_id: str
    score: ScoreBreakdown
    algorithm: str
    metadata: dict[str, Any]
    created_at: datetime
    status: MatchStatus = MatchStatus.PENDING

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user1Id": self.user1_id,
            "user2Id": self.user2_id,
            "totalScore": self.score.total_score,
            **{_camel(k): v for k, v in self.score.subscores().items()},
            "premiumBonus": self.score.premium_bonus,
            "algorithm": self.algorithm,
            "metadata": self.metadata,
            "createdAt": _iso(self.created_at),
            "status": self.status.value,
        }
