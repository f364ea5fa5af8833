import json
import os
from typing import Any

ALGORITHM_VERSION = os.getenv("ALGORITHM_VERSION", "dating_v1")
CANDIDATE_POOL_CAP = int(os.getenv("CANDIDATE_POOL_CAP", "100"))
DEFAULT_MAX_MATCHES = int(os.getenv("DEFAULT_MAX_MATCHES", "10"))
MAX_MATCHES_LIMIT = int(os.getenv("MAX_MATCHES_LIMIT", "50"))
DEFAULT_QUEUE_INTENT = os.getenv("DEFAULT_QUEUE_INTENT", "CASUAL")
QUEUE_ENTRY_TTL_MINUTES = int(os.getenv("QUEUE_ENTRY_TTL_MINUTES", "10"))
STORE_TIMEOUT_SECONDS = float(os.getenv("STORE_TIMEOUT_SECONDS", "5"))
SCORING_MAX_WORKERS = int(os.getenv("SCORING_MAX_WORKERS", "8"))
HISTORY_DEFAULT_LIMIT = int(os.getenv("HISTORY_DEFAULT_LIMIT", "20"))
HISTORY_MAX_LIMIT = int(os.getenv("HISTORY_MAX_LIMIT", "100"))
QUEUE_MATCH_MIN_SCORE = float(os.getenv("QUEUE_MATCH_MIN_SCORE", "0.4"))
QUEUE_MATCH_BATCH_SIZE = int(os.getenv("QUEUE_MATCH_BATCH_SIZE", "50"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

DEFAULT_MATCHING_CONFIG: dict[str, Any] = {
    "FAMILY_PLANS_W": float(os.getenv("FAMILY_PLANS_W", "0.08")),
    "RELIGION_W": float(os.getenv("RELIGION_W", "0.05")),
    "EDUCATION_W": float(os.getenv("EDUCATION_W", "0.03")),
    "POLITICAL_W": float(os.getenv("POLITICAL_W", "0.03")),
    "PREMIUM_BONUS": float(os.getenv("PREMIUM_BONUS", "0.05")),
    "PREMIUM_BONUS_CAP": float(os.getenv("PREMIUM_BONUS_CAP", "0.05")),
    "AGE_DECAY_YEARS": float(os.getenv("AGE_DECAY_YEARS", "10")),
    "UNKNOWN_AGE_SCORE": float(os.getenv("UNKNOWN_AGE_SCORE", "0.5")),
}

if os.getenv("MATCHING_CONFIG_JSON"):
    try:
        DEFAULT_MATCHING_CONFIG.update(json.loads(os.getenv("MATCHING_CONFIG_JSON", "{}")))
    except json.JSONDecodeError:
        pass

# Applied to a brand-new preferences record and to every field a stored record lacks.
DEFAULT_PREFERENCES: dict[str, Any] = {
    "min_age": 18,
    "max_age": 65,
    "max_radius": 50.0,
    "ethnicity_importance": 0.0,
    "age_weight": 0.3,
    "location_weight": 0.4,
    "interest_weight": 0.2,
    "language_weight": 0.1,
    "gender_weight": 0.25,
    "relationship_intent_weight": 0.15,
    "lifestyle_weight": 0.10,
}

BASE_WEIGHT_SUM_MIN = 0.8
BASE_WEIGHT_SUM_MAX = 1.2
AGE_MIN = 18
AGE_MAX = 100

RL_FIND_MATCHES_LIMIT = int(os.getenv("RL_FIND_MATCHES_LIMIT", "30"))
RL_QUEUE_JOIN_LIMIT = int(os.getenv("RL_QUEUE_JOIN_LIMIT", "30"))
RL_WINDOW_SECONDS = int(os.getenv("RL_WINDOW_SECONDS", "60"))
