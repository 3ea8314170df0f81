# Scoring weights and caps for the rule-based recommendation engine.
BASE_QUALITY_WEIGHT = 0.2        # rating/5 * weight
PREFERENCE_BOOST = 0.2           # candidate category in declared preferences
POPULAR_PREFERENCE_BOOST = 0.2   # same boost on the no-history path

CATEGORY_ACTIVITY_DIVISOR = 10.0
CATEGORY_ACTIVITY_CAP = 0.5
SIMILARITY_CAP = 0.3

TRENDING_THRESHOLD = 10          # activities in one category, strictly greater
TRENDING_BOOST = 0.1

UNKNOWN_ACTIVITY_WEIGHT = 0.1

SECONDS_PER_DAY = 24 * 60 * 60

# Reason attribution order: ties go to the earlier entry
REASON_PRIORITY = (
    ("purchase", "similar_purchase"),
    ("cart", "frequently_bought_together"),
    ("view", "similar_view"),
    ("wishlist", "wishlist_recommendation"),
)

CREATED_EVENT_TOP_N = 3

# Cache keys
USER_VIEW_KEY = "user:{user_id}"
