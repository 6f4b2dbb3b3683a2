"""Prometheus metrics for the membership controller."""

from prometheus_client import Counter, Gauge

RECONCILES = Counter(
    "membership_reconciles_total",
    "Cluster reconciliations by operation and outcome",
    ["operation", "result"],
)
REQUEUES = Counter(
    "membership_requeues_total",
    "Reconciliations requeued, by reason",
    ["reason"],
)
SPACE_OPERATIONS = Counter(
    "membership_execution_space_operations_total",
    "Execution space create/delete calls",
    ["operation", "result"],
)
JOINED_CLUSTERS = Gauge(
    "membership_joined_clusters",
    "Clusters currently joined (active with an execution space)",
)
