"""
Kubernetes service layer — abstracts all K8s API interactions for Cluster CRDs.

Design principles:
  - Idempotent: register checks if the cluster exists before creating
  - Quota enforcement: global cap on registered clusters
  - Unregister only requests deletion; the operator finishes it
"""

import logging
from typing import Optional

from kubernetes import client, config
from kubernetes.client import ApiException

from membership_api.config import settings
from membership_api.models import ClusterCondition, ClusterPhase, ClusterResponse
from membership_operator.config import FINALIZER
from membership_operator.errors import InvalidSpaceNameError
from membership_operator.names import space_name

logger = logging.getLogger("cluster_service")

_k8s_loaded = False


def _ensure_k8s():
    """Load Kubernetes config exactly once."""
    global _k8s_loaded
    if _k8s_loaded:
        return
    if settings.IN_CLUSTER:
        config.load_incluster_config()
    else:
        config.load_kube_config(config_file=settings.KUBECONFIG or None)
    _k8s_loaded = True


def _api() -> client.CustomObjectsApi:
    _ensure_k8s()
    return client.CustomObjectsApi()


def cluster_phase(metadata: dict) -> ClusterPhase:
    if metadata.get("deletionTimestamp"):
        return ClusterPhase.TERMINATING
    if FINALIZER in (metadata.get("finalizers") or []):
        return ClusterPhase.JOINED
    return ClusterPhase.PENDING


def _parse_cluster(item: dict) -> ClusterResponse:
    """Convert a raw K8s CRD dict into a ClusterResponse model."""
    metadata = item["metadata"]
    spec = item.get("spec", {})
    status = item.get("status") or {}
    try:
        execution_space = space_name(metadata["name"])
    except InvalidSpaceNameError:
        execution_space = None
    return ClusterResponse(
        name=metadata["name"],
        phase=cluster_phase(metadata),
        executionSpace=execution_space,
        labels=metadata.get("labels") or {},
        apiEndpoint=spec.get("apiEndpoint"),
        createdAt=metadata.get("creationTimestamp"),
        deletionTimestamp=metadata.get("deletionTimestamp"),
        conditions=[ClusterCondition(**c) for c in status.get("conditions", [])],
    )


def list_clusters() -> list[ClusterResponse]:
    """List all registered Cluster CRDs."""
    api = _api()
    result = api.list_cluster_custom_object(
        settings.CRD_GROUP, settings.CRD_VERSION, settings.CRD_PLURAL
    )
    return [_parse_cluster(item) for item in result.get("items", [])]


def get_cluster(name: str) -> Optional[ClusterResponse]:
    """Get a single Cluster CRD by name."""
    api = _api()
    try:
        item = api.get_cluster_custom_object(
            settings.CRD_GROUP, settings.CRD_VERSION, settings.CRD_PLURAL, name
        )
        return _parse_cluster(item)
    except ApiException as e:
        if e.status == 404:
            return None
        raise


def register_cluster(name: str, labels: dict, api_endpoint: Optional[str] = None) -> ClusterResponse:
    """
    Create a Cluster CRD. Idempotent: returns the existing cluster if already registered.
    Raises ValueError for quota violations.
    """
    api = _api()

    existing = get_cluster(name)
    if existing:
        logger.info(f"Cluster {name} already registered, returning existing (idempotent)")
        return existing

    registered = list_clusters()
    if len(registered) >= settings.MAX_CLUSTERS:
        raise ValueError(
            f"Quota exceeded: {len(registered)}/{settings.MAX_CLUSTERS} clusters registered"
        )

    spec = {}
    if api_endpoint:
        spec["apiEndpoint"] = api_endpoint
    body = {
        "apiVersion": f"{settings.CRD_GROUP}/{settings.CRD_VERSION}",
        "kind": settings.CRD_KIND,
        "metadata": {"name": name, "labels": dict(labels)},
        "spec": spec,
    }

    result = api.create_cluster_custom_object(
        settings.CRD_GROUP, settings.CRD_VERSION, settings.CRD_PLURAL, body
    )
    logger.info(f"Cluster {name} registered (labels={labels})")
    return _parse_cluster(result)


def unregister_cluster(name: str) -> bool:
    """Request deletion of a Cluster CRD. Returns True if accepted, False if not found."""
    api = _api()
    try:
        api.delete_cluster_custom_object(
            settings.CRD_GROUP, settings.CRD_VERSION, settings.CRD_PLURAL, name
        )
        logger.info(f"Cluster {name} deletion requested")
        return True
    except ApiException as e:
        if e.status == 404:
            return False
        raise


def count_clusters_by_phase() -> dict:
    """Count clusters grouped by phase."""
    clusters = list_clusters()
    counts = {"total": len(clusters)}
    for phase in ClusterPhase:
        counts[phase.value] = 0
    for c in clusters:
        counts[c.phase.value] += 1
    return counts
