from enum import Enum


class UserRole(str, Enum):
    CUSTOMER = "CUSTOMER"
    ADMIN = "ADMIN"


# ============================================================================
# ACTIVITY TRACKING CONSTANTS
# ============================================================================


class ActivityAction(str, Enum):
    VIEW = "VIEW"
    CLICK = "CLICK"
    ADD_TO_CART = "ADD_TO_CART"
    PURCHASE = "PURCHASE"


# Activity weights (weighted importance), fixed at write time
ACTION_WEIGHTS = {
    ActivityAction.VIEW: 1.0,
    ActivityAction.CLICK: 2.0,
    ActivityAction.ADD_TO_CART: 5.0,
    ActivityAction.PURCHASE: 10.0,
}
DEFAULT_ACTION_WEIGHT = 1.0  # Unknown actions


# ============================================================================
# SIMILARITY GRAPH CONSTANTS
# ============================================================================


class SimilarityBasis(str, Enum):
    CATEGORY = "CATEGORY"
    CO_PURCHASE = "CO_PURCHASE"


CATEGORY_SIMILARITY_SCORE = 0.7
CATEGORY_NEIGHBOR_LIMIT = 10  # Same-category products linked per product
CO_PURCHASE_LOOKBACK_DAYS = 90
CO_PURCHASE_MIN_COUNT = 1  # Candidate needs count > this
CO_PURCHASE_SCORE_MULTIPLIER = 2.0
MAX_SIMILARITY_SCORE = 1.0
SIMILARITY_PROGRESS_LOG_EVERY = 50


# ============================================================================
# USER SCORE CONSTANTS
# ============================================================================

USER_SCORE_LOOKBACK_DAYS = 90
USER_SCORE_EDGES_PER_ACTIVITY = 5  # Top edges propagated per activity
USER_SCORE_DECAY_FACTOR = 0.5  # Attenuation of indirect signals


# ============================================================================
# RETRIEVAL CONSTANTS
# ============================================================================


class RecommendationSource(str, Enum):
    PERSONALIZED = "personalized"
    TRENDING = "trending"


PRECOMPUTED_SCORES_LIMIT = 20  # Stored scores read per request
LIVE_LOOKBACK_DAYS = 30
LIVE_EDGES_PER_ACTIVITY = 10
SIMILAR_EDGES_LIMIT = 10
CANDIDATE_MULTIPLIER = 2  # Over-fetch before active filtering

TRENDING_LOOKBACK_DAYS = 7

RECOMMENDATION_DEFAULT_LIMIT = 12
SIMILAR_DEFAULT_LIMIT = 8
RECOMMENDATION_MAX_LIMIT = 100


# ============================================================================
# BACKGROUND JOB CONSTANTS
# ============================================================================


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


JOB_SIMILARITY_REBUILD = "similarity_rebuild"
JOB_USER_SCORE_REBUILD = "user_score_rebuild"
JOB_ALL_USER_SCORES_REBUILD = "all_user_scores_rebuild"
