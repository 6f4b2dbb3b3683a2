"""
In-memory views of the objects the controller reads and writes.
"""
import copy
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class ClusterRecord:
    """A Cluster registration object as seen by the controller."""
    name: str
    finalizers: list[str] = field(default_factory=list)
    deletion_timestamp: Optional[str] = None
    resource_version: Optional[str] = None
    labels: dict = field(default_factory=dict)
    conditions: list = field(default_factory=list)
    raw: dict = field(default_factory=dict, repr=False)

    @property
    def terminating(self) -> bool:
        return bool(self.deletion_timestamp)

    @classmethod
    def from_object(cls, obj: dict) -> "ClusterRecord":
        """Build a record from a raw Kubernetes object dict."""
        metadata = obj.get("metadata", {})
        status = obj.get("status") or {}
        return cls(
            name=metadata["name"],
            finalizers=list(metadata.get("finalizers") or []),
            deletion_timestamp=metadata.get("deletionTimestamp"),
            resource_version=metadata.get("resourceVersion"),
            labels=dict(metadata.get("labels") or {}),
            conditions=list(status.get("conditions") or []),
            raw=copy.deepcopy(obj),
        )

    def to_object(self) -> dict:
        """Raw object carrying this record's finalizers and resourceVersion."""
        obj = copy.deepcopy(self.raw) if self.raw else {}
        metadata = obj.setdefault("metadata", {})
        metadata["name"] = self.name
        metadata["finalizers"] = list(self.finalizers)
        if self.resource_version:
            metadata["resourceVersion"] = self.resource_version
        return obj


@dataclass
class ExecutionSpace:
    name: str
    labels: dict = field(default_factory=dict)
    terminating: bool = False
