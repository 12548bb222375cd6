from prometheus_client import Counter, Histogram
# Prometheus metrics definitions

# Like attempts by outcome: ok, card_not_found, self_interaction,
# like_limit_reached, insufficient_balance, replayed, transient
likes_total = Counter(
    "likes_total", "Like attempts by outcome", ["status"]
)

_like_latency_buckets = (
    0.005,
    0.01,
    0.025,
    0.05,
    0.1,
    0.25,
    1.0,
)

# Time spent in the atomic like transaction, commit included
like_latency_seconds = Histogram(
    "like_latency_seconds", "Like transaction latency", buckets=_like_latency_buckets
)

cards_created_total = Counter(
    "cards_created_total", "Recognition cards created"
)

# Users touched by the weekly reset sweep
weekly_reset_users_total = Counter(
    "weekly_reset_users_total", "Weekly balance resets by result", ["result"]
)

# Aggregation queries that gave up after retries
stats_unavailable_total = Counter(
    "stats_unavailable_total", "Aggregation queries failed after retries"
)

__all__ = [
    "likes_total",
    "like_latency_seconds",
    "cards_created_total",
    "weekly_reset_users_total",
    "stats_unavailable_total",
]
