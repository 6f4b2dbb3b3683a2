"""
Shared pytest fixtures for membership tests.

This module provides in-memory doubles for the two stores the controller
talks to:
- InMemoryClusterStore: finalizer-aware deletion, resourceVersion checks
- InMemorySpaceStore: asynchronous deletion, injectable failures
Both count calls so tests can assert on writes.
"""

import copy
from collections import Counter
from datetime import datetime, timezone
from typing import Optional

import pytest

from membership_operator.config import FINALIZER
from membership_operator.controller import ClusterController
from membership_operator.errors import (
    AlreadyExistsError, ConflictError, NotFoundError, StoreError,
)
from membership_operator.models import ClusterRecord, ExecutionSpace
from membership_operator.registry import ClusterRegistry


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class InMemoryClusterStore:
    """Cluster records with the store's finalizer semantics."""

    def __init__(self):
        self.records: dict[str, ClusterRecord] = {}
        self.calls = Counter()
        self.failures: dict[str, Exception] = {}

    def add(self, name: str, finalizers=None, terminating: bool = False,
            labels: Optional[dict] = None) -> ClusterRecord:
        record = ClusterRecord(
            name=name,
            finalizers=list(finalizers or []),
            deletion_timestamp=_now() if terminating else None,
            resource_version="1",
            labels=dict(labels or {}),
        )
        self.records[name] = record
        return copy.deepcopy(record)

    def _maybe_fail(self, op: str):
        if op in self.failures:
            raise self.failures[op]

    def get(self, name: str) -> ClusterRecord:
        self.calls["get"] += 1
        self._maybe_fail("get")
        if name not in self.records:
            raise NotFoundError(f"Cluster {name} not found")
        return copy.deepcopy(self.records[name])

    def list(self) -> list[ClusterRecord]:
        self.calls["list"] += 1
        self._maybe_fail("list")
        return [copy.deepcopy(r) for r in self.records.values()]

    def update(self, record: ClusterRecord) -> ClusterRecord:
        self.calls["update"] += 1
        self._maybe_fail("update")
        current = self.records.get(record.name)
        if current is None:
            raise NotFoundError(f"Cluster {record.name} not found")
        if record.resource_version != current.resource_version:
            raise ConflictError(f"Cluster {record.name} was modified concurrently")
        stored = copy.deepcopy(record)
        stored.deletion_timestamp = current.deletion_timestamp
        stored.resource_version = str(int(current.resource_version) + 1)
        if stored.terminating and not stored.finalizers:
            del self.records[record.name]
        else:
            self.records[record.name] = stored
        return copy.deepcopy(stored)

    def delete(self, name: str):
        """Soft delete while finalizers remain, hard delete otherwise."""
        record = self.records[name]
        if record.finalizers:
            if not record.deletion_timestamp:
                record.deletion_timestamp = _now()
                record.resource_version = str(int(record.resource_version) + 1)
        else:
            del self.records[name]

    @property
    def writes(self) -> int:
        return self.calls["update"]


class InMemorySpaceStore:
    """Execution spaces whose deletion completes only when told to."""

    def __init__(self, async_delete: bool = False):
        self.spaces: dict[str, ExecutionSpace] = {}
        self.calls = Counter()
        self.failures: dict[str, Exception] = {}
        self.async_delete = async_delete

    def add(self, name: str, labels: Optional[dict] = None):
        self.spaces[name] = ExecutionSpace(name=name, labels=dict(labels or {}))

    def _maybe_fail(self, op: str):
        if op in self.failures:
            raise self.failures[op]

    def get(self, name: str) -> ExecutionSpace:
        self.calls["get"] += 1
        self._maybe_fail("get")
        if name not in self.spaces:
            raise NotFoundError(f"Namespace {name} not found")
        return copy.deepcopy(self.spaces[name])

    def create(self, name: str, labels: dict) -> ExecutionSpace:
        self.calls["create"] += 1
        self._maybe_fail("create")
        if name in self.spaces:
            raise AlreadyExistsError(f"Namespace {name} already exists")
        self.spaces[name] = ExecutionSpace(name=name, labels=dict(labels))
        return copy.deepcopy(self.spaces[name])

    def delete(self, name: str) -> None:
        self.calls["delete"] += 1
        self._maybe_fail("delete")
        if name not in self.spaces:
            raise NotFoundError(f"Namespace {name} not found")
        if self.async_delete:
            self.spaces[name].terminating = True
        else:
            del self.spaces[name]

    def finish_deletions(self):
        for name in [n for n, s in self.spaces.items() if s.terminating]:
            del self.spaces[name]

    @property
    def writes(self) -> int:
        return self.calls["create"] + self.calls["delete"]


@pytest.fixture
def clusters():
    return InMemoryClusterStore()


@pytest.fixture
def spaces():
    return InMemorySpaceStore()


@pytest.fixture
def registry():
    return ClusterRegistry()


@pytest.fixture
def controller(clusters, spaces, registry):
    return ClusterController(clusters, spaces, registry=registry,
                             finalizer=FINALIZER, requeue_delay=5)


@pytest.fixture
def transient_error():
    return StoreError("connection reset by peer")


@pytest.fixture
def async_spaces():
    return InMemorySpaceStore(async_delete=True)
