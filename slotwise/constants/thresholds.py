"""
Threshold Constants

Centralized threshold values used by the recommendation scorer and slot logic.

IMPORTANT: These values MUST stay in sync with algorithm implementations.
Values are documented with SYNC comments showing which algorithm uses them.
"""

# ============================================================================
# Capacity Score Step Function
# SYNC WITH: slotwise/algorithms/recommendation.py capacity_score()
# ============================================================================

# (utilization lower bound, score) pairs checked top-down
CAPACITY_SCORE_STEPS = (
    (0.9, 0.2),  # Nearly full
    (0.7, 0.5),  # Moderately full
    (0.5, 0.8),  # Half full
)
CAPACITY_SCORE_OPEN = 1.0  # Below every step: plenty of capacity


# ============================================================================
# Distance / Route Efficiency
# SYNC WITH: slotwise/algorithms/geo.py, slotwise/algorithms/recommendation.py
# ============================================================================

DEFAULT_MAX_DISTANCE_KM = 50.0

# Distances are rounded to this many decimals before scoring
DISTANCE_ROUNDING_DECIMALS = 1

# Other deliveries within this many minutes of a slot start count for routing
ROUTE_WINDOW_MINUTES = 120

# Score when no other deliveries share the window (no penalty for being first)
ROUTE_SCORE_NO_NEIGHBOURS = 1.0


# ============================================================================
# Personalization
# SYNC WITH: slotwise/algorithms/recommendation.py personalization_score()
# ============================================================================

PREFERRED_DAY_BONUS = 0.3
PREFERRED_TIME_BONUS = 0.2
PREVIOUS_LOCATION_SCORE = 1.0
OTHER_LOCATION_SCORE = 0.3


# ============================================================================
# Ranking / Output
# ============================================================================

DEFAULT_TOP_K_SLOTS = 3
DEFAULT_TOP_K_LOCATIONS = 1

# Neutral score for a candidate with no applicable factor at all
NEUTRAL_SCORE = 0.5

# Decimal places kept on recommendationScore
SCORE_DECIMALS = 4


# ============================================================================
# Default Weights
# ============================================================================

DEFAULT_CAPACITY_WEIGHT = 0.4
DEFAULT_DISTANCE_WEIGHT = 0.3
DEFAULT_ROUTE_EFFICIENCY_WEIGHT = 0.2
DEFAULT_PERSONALIZATION_WEIGHT = 0.1


# ============================================================================
# Event Delivery
# ============================================================================

DEFAULT_RETRY_CEILING = 5
DEFAULT_RETRY_BACKOFF_SECONDS = 1.0
MAX_RETRY_BACKOFF_SECONDS = 60.0

# Delivered records are kept this long so retried producers still hit the
# duplicate check; dead letters are capped by count instead
DELIVERED_RETENTION_SECONDS = 3600.0
MAX_DEAD_LETTERS = 1000


# ============================================================================
# Slot Generation
# SYNC WITH: slotwise/algorithms/slot_generator.py
# ============================================================================

# Used when neither the template nor the effective rule sets a capacity
DEFAULT_SLOT_CAPACITY = 1
