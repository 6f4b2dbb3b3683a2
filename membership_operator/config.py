"""
Operator configuration — all settings from env vars with sensible defaults.
"""
import os

# ---------------------------------------------------------------------------
# Cluster registration CRD (cluster-scoped)
# ---------------------------------------------------------------------------
CLUSTER_GROUP = os.environ.get("CLUSTER_GROUP", "cluster.multicluster.io")
CLUSTER_VERSION = os.environ.get("CLUSTER_VERSION", "v1alpha1")
CLUSTER_PLURAL = os.environ.get("CLUSTER_PLURAL", "clusters")

# Finalizer token owned by the membership controller
FINALIZER = os.environ.get("FINALIZER", f"{CLUSTER_GROUP}/cluster-controller")

# ---------------------------------------------------------------------------
# Execution spaces
# ---------------------------------------------------------------------------
EXECUTION_SPACE_PREFIX = os.environ.get("EXECUTION_SPACE_PREFIX", "exec-")
EXECUTION_SPACE_LABEL = os.environ.get("EXECUTION_SPACE_LABEL", "multicluster.io/executionspace")
EXECUTION_SPACE_LABEL_VALUE = ""

# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------
MAX_WORKERS = int(os.environ.get("MAX_WORKERS", "4"))
REQUEUE_DELAY = float(os.environ.get("REQUEUE_DELAY", "10"))
STORE_CALL_TIMEOUT = float(os.environ.get("STORE_CALL_TIMEOUT", "15"))
RESYNC_INTERVAL = float(os.environ.get("RESYNC_INTERVAL", "300"))

# ---------------------------------------------------------------------------
# Observability
# ---------------------------------------------------------------------------
REDIS_URL = os.environ.get("REDIS_URL", "")
METRICS_PORT = int(os.environ.get("METRICS_PORT", "9090"))
