"""
Store clients — the two external stores the controller talks to.

  ClusterStore  Cluster registration objects (cluster-scoped CRD)
  SpaceStore    execution spaces (Namespaces)

Both are Protocols so the controller can run against in-memory doubles.
The Kubernetes-backed implementations translate ApiException status codes
into the errors in membership_operator.errors and bound every call with a
request timeout.
"""

import logging
from typing import Optional, Protocol

import urllib3
from kubernetes import client, config
from kubernetes.client import ApiException

from .config import (
    CLUSTER_GROUP, CLUSTER_PLURAL, CLUSTER_VERSION, STORE_CALL_TIMEOUT,
)
from .errors import AlreadyExistsError, ConflictError, NotFoundError, StoreError
from .models import ClusterRecord, ExecutionSpace

logger = logging.getLogger("stores")


class ClusterStore(Protocol):
    def get(self, name: str) -> ClusterRecord: ...

    def list(self) -> list[ClusterRecord]: ...

    def update(self, record: ClusterRecord) -> ClusterRecord: ...


class SpaceStore(Protocol):
    def get(self, name: str) -> ExecutionSpace: ...

    def create(self, name: str, labels: dict) -> ExecutionSpace: ...

    def delete(self, name: str) -> None: ...


# ---------------------------------------------------------------------------
# Kubernetes client helpers
# ---------------------------------------------------------------------------

_k8s_loaded = False


def _ensure_k8s():
    """Load kubeconfig exactly once."""
    global _k8s_loaded
    if _k8s_loaded:
        return
    try:
        config.load_incluster_config()
    except config.ConfigException:
        config.load_kube_config()
    _k8s_loaded = True


def core_api() -> client.CoreV1Api:
    _ensure_k8s()
    return client.CoreV1Api()


def custom_api() -> client.CustomObjectsApi:
    _ensure_k8s()
    return client.CustomObjectsApi()


def _translate(e: ApiException, what: str) -> StoreError:
    if e.status == 404:
        return NotFoundError(f"{what} not found")
    if e.status == 409:
        if "AlreadyExists" in (e.body or "") or e.reason == "AlreadyExists":
            return AlreadyExistsError(f"{what} already exists")
        return ConflictError(f"{what} was modified concurrently: {e.reason}")
    return StoreError(f"{what}: API error {e.status} {e.reason}")


# ---------------------------------------------------------------------------
# Cluster records
# ---------------------------------------------------------------------------

class KubeClusterStore:
    """Cluster CRD access through CustomObjectsApi."""

    def __init__(self, api: Optional[client.CustomObjectsApi] = None,
                 timeout: float = STORE_CALL_TIMEOUT):
        self._api = api
        self.timeout = timeout

    @property
    def api(self) -> client.CustomObjectsApi:
        if self._api is None:
            self._api = custom_api()
        return self._api

    def get(self, name: str) -> ClusterRecord:
        try:
            obj = self.api.get_cluster_custom_object(
                CLUSTER_GROUP, CLUSTER_VERSION, CLUSTER_PLURAL, name,
                _request_timeout=self.timeout,
            )
        except ApiException as e:
            raise _translate(e, f"Cluster {name}") from e
        except urllib3.exceptions.HTTPError as e:
            raise StoreError(f"Cluster {name}: {e}") from e
        return ClusterRecord.from_object(obj)

    def list(self) -> list[ClusterRecord]:
        try:
            result = self.api.list_cluster_custom_object(
                CLUSTER_GROUP, CLUSTER_VERSION, CLUSTER_PLURAL,
                _request_timeout=self.timeout,
            )
        except ApiException as e:
            raise _translate(e, "Cluster list") from e
        except urllib3.exceptions.HTTPError as e:
            raise StoreError(f"Cluster list: {e}") from e
        return [ClusterRecord.from_object(item) for item in result.get("items", [])]

    def update(self, record: ClusterRecord) -> ClusterRecord:
        """Replace the object; the carried resourceVersion makes the write conditional."""
        try:
            obj = self.api.replace_cluster_custom_object(
                CLUSTER_GROUP, CLUSTER_VERSION, CLUSTER_PLURAL, record.name,
                record.to_object(),
                _request_timeout=self.timeout,
            )
        except ApiException as e:
            raise _translate(e, f"Cluster {record.name}") from e
        except urllib3.exceptions.HTTPError as e:
            raise StoreError(f"Cluster {record.name}: {e}") from e
        return ClusterRecord.from_object(obj)


# ---------------------------------------------------------------------------
# Execution spaces
# ---------------------------------------------------------------------------

def _to_space(ns) -> ExecutionSpace:
    phase = ns.status.phase if ns.status else None
    return ExecutionSpace(
        name=ns.metadata.name,
        labels=dict(ns.metadata.labels or {}),
        terminating=phase == "Terminating",
    )


class KubeSpaceStore:
    """Execution spaces as Namespaces through CoreV1Api."""

    def __init__(self, api: Optional[client.CoreV1Api] = None,
                 timeout: float = STORE_CALL_TIMEOUT):
        self._api = api
        self.timeout = timeout

    @property
    def api(self) -> client.CoreV1Api:
        if self._api is None:
            self._api = core_api()
        return self._api

    def get(self, name: str) -> ExecutionSpace:
        try:
            ns = self.api.read_namespace(name=name, _request_timeout=self.timeout)
        except ApiException as e:
            raise _translate(e, f"Namespace {name}") from e
        except urllib3.exceptions.HTTPError as e:
            raise StoreError(f"Namespace {name}: {e}") from e
        return _to_space(ns)

    def create(self, name: str, labels: dict) -> ExecutionSpace:
        body = client.V1Namespace(
            metadata=client.V1ObjectMeta(name=name, labels=dict(labels)),
        )
        try:
            ns = self.api.create_namespace(body=body, _request_timeout=self.timeout)
        except ApiException as e:
            raise _translate(e, f"Namespace {name}") from e
        except urllib3.exceptions.HTTPError as e:
            raise StoreError(f"Namespace {name}: {e}") from e
        logger.info(f"Namespace {name} created")
        return _to_space(ns)

    def delete(self, name: str) -> None:
        try:
            self.api.delete_namespace(name=name, _request_timeout=self.timeout)
        except ApiException as e:
            raise _translate(e, f"Namespace {name}") from e
        except urllib3.exceptions.HTTPError as e:
            raise StoreError(f"Namespace {name}: {e}") from e
        logger.info(f"Namespace {name} deletion initiated")
