"""
Algorithms Package

Pure, deterministic scheduling algorithms:
- eligibility: Zone/rule evaluation for an address and date
- slot_generator: Template expansion into dated slots
- recommendation: Weighted, explainable slot and location ranking
- geo: Haversine distance and distance scoring

No algorithm here mutates shared state; all of them are safe to call
concurrently from request handlers.
"""

from slotwise.algorithms.eligibility import evaluate, check_postcode, require_eligible
from slotwise.algorithms.slot_generator import generate_slots
from slotwise.algorithms.recommendation import score_slots, score_locations

__all__ = [
    "evaluate",
    "check_postcode",
    "require_eligible",
    "generate_slots",
    "score_slots",
    "score_locations",
]
