from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .config import DEFAULT_MAX_MATCHES, DEFAULT_QUEUE_INTENT


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")


class _PreferenceUpdate(BaseModel):
    """Partial preference update; only keys present in the body are written.

    Values are left untyped so range and enum problems come back from
    ``validate_preferences`` with a reason code instead of a 422.
    """

    model_config = ConfigDict(populate_by_name=True, extra="forbid", alias_generator=to_camel)

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class UpdatePreferencesRequest(_PreferenceUpdate):
    min_age: Any = None
    max_age: Any = None
    max_radius: Any = None
    interests: Any = None
    preferred_interests: Any = None
    languages: Any = None
    preferred_languages: Any = None
    ethnicity: Any = None
    preferred_ethnicities: Any = None
    ethnicity_importance: Any = None
    age_weight: Any = None
    location_weight: Any = None
    interest_weight: Any = None
    language_weight: Any = None


class UpdateDatingPreferencesRequest(_PreferenceUpdate):
    preferred_genders: Any = None
    preferred_relationship_intents: Any = None
    preferred_family_plans: Any = None
    preferred_religions: Any = None
    preferred_education_levels: Any = None
    preferred_political_views: Any = None
    preferred_exercise_habits: Any = None
    preferred_smoking_habits: Any = None
    preferred_drinking_habits: Any = None
    preferred_min_age: Any = None
    preferred_max_age: Any = None
    is_premium_user: Any = None
    premium_expiry: Any = None
    gender_weight: Any = None
    relationship_intent_weight: Any = None
    lifestyle_weight: Any = None


class FindMatchesRequest(_CamelModel):
    user_id: str = Field(alias="userId")
    intent: str = DEFAULT_QUEUE_INTENT
    max_matches: int = Field(default=DEFAULT_MAX_MATCHES, alias="maxMatches")


class JoinQueueRequest(_CamelModel):
    user_id: str = Field(alias="userId")
    intent: str
    profile: dict[str, Any] = Field(default_factory=dict)


class LeaveQueueRequest(_CamelModel):
    user_id: str = Field(alias="userId")
