"""
Cluster API routes — registration endpoints for Cluster CRDs.

Features:
  - Register / unregister member clusters (the operator does the rest)
  - Rate limiting per-IP via slowapi
  - Prometheus metrics exposition
  - Lifecycle events read back from the operator's Redis Streams
  - Audit logging (in-memory ring buffer)
"""

import logging
from collections import deque
from datetime import datetime, timezone

from fastapi import APIRouter, HTTPException, Request
from prometheus_client import Counter, Gauge
from slowapi import Limiter
from slowapi.util import get_remote_address

from membership_api.config import settings
from membership_api.models import (
    ClusterEvent, ClusterListResponse, ClusterPhase, ClusterRegisterRequest,
    ClusterResponse, ErrorResponse,
)
from membership_api.services.cluster_service import (
    count_clusters_by_phase, get_cluster, list_clusters, register_cluster,
    unregister_cluster,
)
from membership_operator.events import EventPublisher

logger = logging.getLogger("clusters")

router = APIRouter(prefix="/clusters", tags=["clusters"])
limiter = Limiter(key_func=get_remote_address)
events = EventPublisher(settings.REDIS_URL)

# --- Audit log (in-memory ring buffer) ---
_audit_log: deque[dict] = deque(maxlen=50)


def _audit(action: str, cluster_name: str, result: str, detail: str = "",
           user_id: str = "anonymous"):
    entry = {
        "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        "action": action,
        "cluster_name": cluster_name,
        "user_id": user_id,
        "result": result,
        "detail": detail,
    }
    _audit_log.append(entry)
    logger.info(f"AUDIT: {action} {cluster_name} by {user_id} -> {result}")


def _get_user_id(request: Request) -> str:
    """Caller identity from the X-User-Id header, 'anonymous' if absent."""
    return request.headers.get("x-user-id", "anonymous")


# --- Prometheus metrics ---
CLUSTERS_REGISTERED = Counter(
    "membership_api_clusters_registered_total",
    "Cluster registrations accepted by the API",
)
CLUSTERS_UNREGISTERED = Counter(
    "membership_api_clusters_unregistered_total",
    "Cluster unregistrations accepted by the API",
)
API_FAILURES = Counter(
    "membership_api_failures_total",
    "Cluster API calls that failed against the control plane",
)
CLUSTERS_TOTAL = Gauge(
    "membership_api_clusters",
    "Registered clusters by phase",
    ["phase"],
)


def update_gauges():
    counts = count_clusters_by_phase()
    for phase in ClusterPhase:
        CLUSTERS_TOTAL.labels(phase=phase.value).set(counts.get(phase.value, 0))


# =========================================================================
# REST Endpoints
# =========================================================================

@router.post("", response_model=ClusterResponse, status_code=201,
             responses={429: {"model": ErrorResponse}, 500: {"model": ErrorResponse}})
@limiter.limit(settings.RATE_LIMIT)
async def register_cluster_endpoint(req: ClusterRegisterRequest, request: Request):
    """Register a member cluster. Idempotent: returns the existing cluster if the name matches."""
    user_id = _get_user_id(request)
    try:
        cluster = register_cluster(req.name, req.labels, req.apiEndpoint)
    except ValueError as e:
        _audit("REGISTER", req.name, "QUOTA_EXCEEDED", str(e), user_id)
        raise HTTPException(status_code=429, detail=str(e))
    except Exception as e:
        _audit("REGISTER", req.name, "FAILED", str(e), user_id)
        API_FAILURES.inc()
        logger.error(f"Failed to register cluster {req.name}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to register cluster: {str(e)}")
    _audit("REGISTER", req.name, "SUCCESS", user_id=user_id)
    CLUSTERS_REGISTERED.inc()
    return cluster


@router.get("", response_model=ClusterListResponse)
@limiter.limit(settings.RATE_LIMIT)
async def list_clusters_endpoint(request: Request):
    """List all registered clusters."""
    clusters = list_clusters()
    return ClusterListResponse(clusters=clusters, total=len(clusters))


@router.get("/audit/log")
@limiter.limit(settings.RATE_LIMIT)
async def get_audit_log(request: Request):
    """Get the platform audit log (last 50 entries)."""
    return {"entries": list(_audit_log), "count": len(_audit_log)}


@router.get("/{cluster_name}", response_model=ClusterResponse,
            responses={404: {"model": ErrorResponse}})
@limiter.limit(settings.RATE_LIMIT)
async def get_cluster_endpoint(cluster_name: str, request: Request):
    """Get a specific cluster by name."""
    cluster = get_cluster(cluster_name)
    if not cluster:
        raise HTTPException(status_code=404, detail=f"Cluster '{cluster_name}' not found")
    return cluster


@router.delete("/{cluster_name}", status_code=202,
               responses={404: {"model": ErrorResponse}})
@limiter.limit(settings.RATE_LIMIT)
async def unregister_cluster_endpoint(cluster_name: str, request: Request):
    """Unregister a cluster. Returns 202 Accepted: the execution space is removed asynchronously."""
    user_id = _get_user_id(request)
    if not unregister_cluster(cluster_name):
        raise HTTPException(status_code=404, detail=f"Cluster '{cluster_name}' not found")
    _audit("UNREGISTER", cluster_name, "ACCEPTED", user_id=user_id)
    CLUSTERS_UNREGISTERED.inc()
    return {"message": f"Cluster '{cluster_name}' unregistration initiated", "status": "accepted"}


@router.get("/{cluster_name}/events")
@limiter.limit(settings.RATE_LIMIT)
async def get_cluster_events(cluster_name: str, request: Request):
    """Lifecycle events published by the operator (empty when Redis is not configured)."""
    if not get_cluster(cluster_name):
        raise HTTPException(status_code=404, detail=f"Cluster '{cluster_name}' not found")
    entries = [ClusterEvent(**e) for e in events.read(cluster_name)]
    return {"cluster": cluster_name, "events": [e.model_dump() for e in entries]}
