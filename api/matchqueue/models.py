import uuid
from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Float, Index, Integer, String, func, text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from .database import Base


class MatchingPreferencesRow(Base):
    __tablename__ = "matching_preferences"

    user_id = Column(String, primary_key=True)
    min_age = Column(Integer, nullable=False, server_default=text("18"))
    max_age = Column(Integer, nullable=False, server_default=text("65"))
    max_radius = Column(Float, nullable=False, server_default=text("50"))
    interests = Column(JSONB, nullable=False, server_default=text("'[]'::jsonb"))
    preferred_interests = Column(JSONB, nullable=False, server_default=text("'[]'::jsonb"))
    languages = Column(JSONB, nullable=False, server_default=text("'[]'::jsonb"))
    preferred_languages = Column(JSONB, nullable=False, server_default=text("'[]'::jsonb"))
    ethnicity = Column(String, nullable=True)
    preferred_ethnicities = Column(JSONB, nullable=False, server_default=text("'[]'::jsonb"))
    ethnicity_importance = Column(Float, nullable=False, server_default=text("0"))
    age_weight = Column(Float, nullable=False, server_default=text("0.3"))
    location_weight = Column(Float, nullable=False, server_default=text("0.4"))
    interest_weight = Column(Float, nullable=False, server_default=text("0.2"))
    language_weight = Column(Float, nullable=False, server_default=text("0.1"))
    preferred_genders = Column(JSONB, nullable=False, server_default=text("'[]'::jsonb"))
    preferred_relationship_intents = Column(JSONB, nullable=False, server_default=text("'[]'::jsonb"))
    preferred_family_plans = Column(JSONB, nullable=False, server_default=text("'[]'::jsonb"))
    preferred_religions = Column(JSONB, nullable=False, server_default=text("'[]'::jsonb"))
    preferred_education_levels = Column(JSONB, nullable=False, server_default=text("'[]'::jsonb"))
    preferred_political_views = Column(JSONB, nullable=False, server_default=text("'[]'::jsonb"))
    preferred_exercise_habits = Column(JSONB, nullable=False, server_default=text("'[]'::jsonb"))
    preferred_smoking_habits = Column(JSONB, nullable=False, server_default=text("'[]'::jsonb"))
    preferred_drinking_habits = Column(JSONB, nullable=False, server_default=text("'[]'::jsonb"))
    preferred_min_age = Column(Integer, nullable=True)
    preferred_max_age = Column(Integer, nullable=True)
    is_premium_user = Column(Boolean, nullable=False, server_default=text("false"))
    premium_expiry = Column(DateTime(timezone=True), nullable=True)
    gender_weight = Column(Float, nullable=False, server_default=text("0.25"))
    relationship_intent_weight = Column(Float, nullable=False, server_default=text("0.15"))
    lifestyle_weight = Column(Float, nullable=False, server_default=text("0.10"))
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class QueueEntryRow(Base):
    __tablename__ = "queue_entry"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(String, nullable=False)
    status = Column(String, nullable=False, default="WAITING")
    intent = Column(String, nullable=False)
    profile = Column(JSONB, nullable=False, server_default=text("'{}'::jsonb"))
    joined_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    expires_at = Column(DateTime(timezone=True), nullable=True)
    left_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint("status IN ('WAITING', 'MATCHED', 'LEFT')", name="ck_queue_entry_status"),
        Index(
            "uq_queue_entry_waiting_user",
            "user_id",
            unique=True,
            postgresql_where=text("status = 'WAITING'"),
        ),
        Index("idx_queue_entry_waiting_intent", "status", "intent", "joined_at"),
    )


class MatchAttemptRow(Base):
    __tablename__ = "match_attempt"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user1_id = Column(String, nullable=False)
    user2_id = Column(String, nullable=False)
    total_score = Column(Float, nullable=False)
    age_score = Column(Float, nullable=False)
    location_score = Column(Float, nullable=False)
    interest_score = Column(Float, nullable=False)
    language_score = Column(Float, nullable=False)
    ethnicity_score = Column(Float, nullable=False)
    gender_compat_score = Column(Float, nullable=False)
    relationship_intent_score = Column(Float, nullable=False)
    family_plans_score = Column(Float, nullable=False)
    religion_score = Column(Float, nullable=False)
    education_score = Column(Float, nullable=False)
    political_score = Column(Float, nullable=False)
    lifestyle_score = Column(Float, nullable=False)
    premium_bonus = Column(Float, nullable=False, server_default=text("0"))
    algorithm = Column(String, nullable=False)
    metadata_json = Column("metadata", JSONB, nullable=False, server_default=text("'{}'::jsonb"))
    status = Column(String, nullable=False, server_default=text("'PENDING'"))
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        CheckConstraint("total_score >= 0 AND total_score <= 1", name="ck_match_attempt_total_score"),
        CheckConstraint("status IN ('PENDING', 'ACCEPTED', 'REJECTED')", name="ck_match_attempt_status"),
        Index("idx_match_attempt_user1", "user1_id", "created_at"),
        Index("idx_match_attempt_user2", "user2_id", "created_at"),
        Index("idx_match_attempt_created_at", "created_at"),
    )
