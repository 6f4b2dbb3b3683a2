"""
Cluster Membership Operator — execution spaces for registered member clusters

Architecture:
  Cluster CRD → kopf watches → reconcile_cluster → ClusterController.reconcile
    Active:
      1. Ensure execution space (exec-{cluster}, marker label)
      2. Ensure finalizer (cluster.multicluster.io/cluster-controller)
    Terminating (our finalizer blocks the hard delete):
      1. Delete execution space
      2. Confirm it is gone (requeue while it is still terminating)
      3. Remove finalizer → store completes the delete

  On Resume (Operator Restart):
    Registry rebuilt from joined clusters, every cluster re-reconciled

  Resync (Timer):
    Re-runs the reconcile so an execution space removed out of band comes back

  Concurrency:
    kopf serializes handling per object and coalesces bursts of events;
    MAX_WORKERS bounds the threads running the blocking handlers.

Errors:
  - Store failures / deletion still pending → kopf.TemporaryError (retry with delay)
  - Unencodable cluster name → kopf.PermanentError (no retry loop)

Run with:  kopf run -m membership_operator.operator --all-namespaces
"""

import logging

import kopf
from prometheus_client import start_http_server

from . import metrics
from .config import (
    CLUSTER_GROUP, CLUSTER_PLURAL, CLUSTER_VERSION, FINALIZER, MAX_WORKERS,
    METRICS_PORT, REDIS_URL, REQUEUE_DELAY, RESYNC_INTERVAL,
)
from .controller import ClusterController, Result
from .errors import StoreError
from .events import EventPublisher
from .registry import ClusterRegistry
from .stores import KubeClusterStore, KubeSpaceStore

logger = logging.getLogger("cluster-operator")


def build_controller() -> ClusterController:
    """Wire the controller to the Kubernetes-backed stores."""
    return ClusterController(
        clusters=KubeClusterStore(),
        spaces=KubeSpaceStore(),
        registry=ClusterRegistry(),
        events=EventPublisher(REDIS_URL),
        finalizer=FINALIZER,
        requeue_delay=REQUEUE_DELAY,
    )


def apply_result(name: str, result: Result):
    """Translate a reconcile Result into kopf's retry semantics."""
    if result.requeue:
        raise kopf.TemporaryError(f"Cluster {name}: {result.reason}", delay=result.delay)
    if result.failed:
        raise kopf.PermanentError(f"Cluster {name}: {result.reason}")
    return None


# ---------------------------------------------------------------------------
# Kopf operator settings
# ---------------------------------------------------------------------------

@kopf.on.startup()
def configure(settings: kopf.OperatorSettings, memo: kopf.Memo, **kwargs):
    settings.posting.enabled = True
    settings.persistence.progress_storage = kopf.AnnotationsProgressStorage(
        prefix=CLUSTER_GROUP
    )
    settings.execution.max_workers = MAX_WORKERS

    controller = build_controller()
    try:
        controller.registry.populate(controller.clusters, controller.finalizer)
    except StoreError as e:
        # Reconciles fill the registry as they run
        logger.warning(f"Could not populate cluster registry at startup: {e}")
    metrics.JOINED_CLUSTERS.set(len(controller.registry))
    memo.controller = controller

    if METRICS_PORT:
        start_http_server(METRICS_PORT)
    logger.info(
        f"Cluster Membership Operator started (max_workers={MAX_WORKERS}, "
        f"finalizer={FINALIZER}, metrics_port={METRICS_PORT})"
    )


# ---------------------------------------------------------------------------
# Reconcile: create / resume / update / delete all converge the same way
# ---------------------------------------------------------------------------

@kopf.on.create(CLUSTER_GROUP, CLUSTER_VERSION, CLUSTER_PLURAL)
@kopf.on.resume(CLUSTER_GROUP, CLUSTER_VERSION, CLUSTER_PLURAL)
@kopf.on.update(CLUSTER_GROUP, CLUSTER_VERSION, CLUSTER_PLURAL)
@kopf.on.delete(CLUSTER_GROUP, CLUSTER_VERSION, CLUSTER_PLURAL)
def reconcile_cluster(name, memo, logger, **kwargs):
    """
    Reconcile one Cluster record.

    The body kopf hands us is ignored: the controller re-reads the record
    and the execution space, so stale events cannot drive a wrong action.
    kopf calls a delete handler only while its own finalizer blocks the
    deletion, so the delete registration is not optional. The controller's
    finalizer still holds the record until the execution space is gone.
    """
    result = memo.controller.reconcile(name)
    if result.requeue:
        logger.info(f"Cluster {name}: requeue in {result.delay}s ({result.reason})")
    return apply_result(name, result)


# ---------------------------------------------------------------------------
# Timer: periodic level-triggered resync
# ---------------------------------------------------------------------------

@kopf.timer(CLUSTER_GROUP, CLUSTER_VERSION, CLUSTER_PLURAL,
            interval=RESYNC_INTERVAL, idle=RESYNC_INTERVAL)
def resync_cluster(name, memo, logger, **kwargs):
    """Catch drift the watch cannot see, e.g. an execution space deleted by hand."""
    result = memo.controller.reconcile(name)
    if result.failed:
        logger.error(f"Resync of cluster {name} failed: {result.reason}")
        return
    if result.requeue:
        logger.warning(f"Resync of cluster {name} will retry: {result.reason}")
