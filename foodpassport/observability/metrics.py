"""
Prometheus metrics for the stamp engine.

- Stamp metrics: unlocks and per-rule failures
- Challenge metrics: completions and matcher failures
- Engine metrics: evaluation latency, aggregate CAS conflicts
"""

import logging
from prometheus_client import Counter, Histogram

logger = logging.getLogger(__name__)

# =============================================================================
# Stamp Metrics
# =============================================================================

stamps_unlocked_total = Counter(
    "stamps_unlocked_total",
    "Total stamps unlocked",
    ["achievement"],
)

stamp_rule_failures_total = Counter(
    "stamp_rule_failures_total",
    "Rule evaluations or unlock writes that raised",
    ["achievement"],
)

# =============================================================================
# Challenge Metrics
# =============================================================================

challenges_completed_total = Counter(
    "challenges_completed_total",
    "Total dish challenges completed",
)

challenge_match_failures_total = Counter(
    "challenge_match_failures_total",
    "Fuzzy match calls treated as not completed because they failed",
    ["reason"],  # reason: timeout/error
)

# =============================================================================
# Engine Metrics
# =============================================================================

meal_evaluation_duration_seconds = Histogram(
    "meal_evaluation_duration_seconds",
    "Time to evaluate one meal event",
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0],
)

aggregate_cas_conflicts_total = Counter(
    "aggregate_cas_conflicts_total",
    "Aggregate writes rejected because of a concurrent update",
)
