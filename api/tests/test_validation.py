from datetime import datetime, timezone

import pytest

from matchqueue.domain import DatingGender, LifestyleHabit, QueueIntent, default_preferences
from matchqueue.errors import ValidationError
from matchqueue.services.validation import (
    BASE_PREFERENCE_FIELDS,
    DATING_PREFERENCE_FIELDS,
    validate_intent,
    validate_preferences,
    validate_profile,
)


def test_valid_partial_update_is_cleaned():
    result = validate_preferences({"min_age": 21, "max_age": 40.0, "preferred_interests": [" hiking ", "art", "art"]})
    assert result.ok
    assert result.cleaned == {"min_age": 21, "max_age": 40, "preferred_interests": ["art", "hiking"]}


def test_inverted_age_range_rejected():
    result = validate_preferences({"min_age": 40, "max_age": 30})
    assert not result.ok
    assert "age_range_inverted" in result.reasons


def test_update_checked_against_stored_record():
    current = default_preferences("u1").merged({"min_age": 40, "max_age": 60})
    result = validate_preferences({"max_age": 35}, current)
    assert not result.ok
    assert result.reasons == ["age_range_inverted"]


def test_age_bounds():
    assert "min_age_out_of_range" in validate_preferences({"min_age": 17}).reasons
    assert "max_age_out_of_range" in validate_preferences({"max_age": 101}).reasons
    assert "min_age_out_of_range" in validate_preferences({"min_age": "twenty"}).reasons


def test_dating_age_window_inverted():
    result = validate_preferences({"preferred_min_age": 40, "preferred_max_age": 25})
    assert "preferred_age_range_inverted" in result.reasons


def test_negative_radius_and_importance_range():
    assert "max_radius_negative" in validate_preferences({"max_radius": -1}).reasons
    assert "ethnicity_importance_out_of_range" in validate_preferences({"ethnicity_importance": 1.5}).reasons


def test_base_weight_sum_must_stay_near_one():
    assert validate_preferences({"age_weight": 0.2}).ok  # 0.9
    assert validate_preferences({"age_weight": 0.5}).ok  # 1.2
    assert validate_preferences({"age_weight": 0.1}).ok  # 0.8
    assert validate_preferences({"age_weight": 0.05}).reasons == ["weight_sum_out_of_range"]
    result = validate_preferences({"age_weight": 0.9})
    assert result.reasons == ["weight_sum_out_of_range"]


def test_negative_weight_rejected():
    result = validate_preferences({"gender_weight": -0.1})
    assert "weight_negative" in result.reasons


def test_enum_sets_are_checked_and_uppercased():
    ok = validate_preferences({"preferred_genders": ["woman", "MAN"]})
    assert ok.ok
    assert ok.cleaned["preferred_genders"] == ["MAN", "WOMAN"]

    bad = validate_preferences({"preferred_smoking_habits": ["SOMETIMES"]})
    assert bad.reasons == ["invalid_preferred_smoking_habits"]


def test_unknown_field_and_field_group_restriction():
    assert validate_preferences({"favourite_colour": "red"}).reasons == ["unknown_field:favourite_colour"]
    result = validate_preferences({"gender_weight": 0.3}, allowed_fields=BASE_PREFERENCE_FIELDS)
    assert result.reasons == ["unknown_field:gender_weight"]
    assert validate_preferences({"gender_weight": 0.3}, allowed_fields=DATING_PREFERENCE_FIELDS).ok


def test_premium_expiry_parsed_as_utc():
    result = validate_preferences({"is_premium_user": True, "premium_expiry": "2026-05-01T10:00:00"})
    assert result.ok
    assert result.cleaned["premium_expiry"] == datetime(2026, 5, 1, 10, 0, tzinfo=timezone.utc)
    assert validate_preferences({"premium_expiry": "soon"}).reasons == ["invalid_premium_expiry"]
    assert validate_preferences({"is_premium_user": "yes"}).reasons == ["invalid_is_premium_user"]


def test_raise_for_reasons_uses_first_reason():
    result = validate_preferences({"min_age": 50, "max_age": 20, "max_radius": -5})
    with pytest.raises(ValidationError) as exc:
        result.raise_for_reasons()
    assert exc.value.reason == "age_range_inverted"
    assert "max_radius_negative" in exc.value.detail


def test_validate_intent():
    assert validate_intent("serious") == QueueIntent.SERIOUS
    with pytest.raises(ValidationError) as exc:
        validate_intent("ROMANCE")
    assert exc.value.reason == "invalid_intent"
    assert exc.value.__cause__ is None
    assert exc.value.__suppress_context__ is True
    with pytest.raises(ValidationError):
        validate_intent(None)


def test_validate_profile():
    profile = validate_profile({"age": 30, "gender": "woman", "smoking": "never", "relationship_intents": ["long_term"]})
    assert profile.age == 30
    assert profile.gender == DatingGender.WOMAN
    assert profile.smoking == LifestyleHabit.NEVER
    assert [i.value for i in profile.relationship_intents] == ["LONG_TERM"]
    assert validate_profile(None).age is None


@pytest.mark.parametrize(
    "raw,reason",
    [
        ({"age": 12}, "age_out_of_range"),
        ({"latitude": 91}, "invalid_latitude"),
        ({"longitude": "east"}, "invalid_longitude"),
        ({"religion": "PASTAFARIAN"}, "invalid_religion"),
        ({"relationship_intents": "LONG_TERM"}, "invalid_relationship_intents"),
        ({"height": 180}, "unknown_field:height"),
    ],
)
def test_validate_profile_rejects(raw, reason):
    with pytest.raises(ValidationError) as exc:
        validate_profile(raw)
    assert exc.value.reason == reason
