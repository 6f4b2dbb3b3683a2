"""
OverridePolicy data model.

Only the shape is defined here; applying overriders to manifests belongs to
the propagation side. Serialization emits exactly the fields the author set,
in the order they were read, so a policy read and written back keeps its
shape.
"""
import copy
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr


class OverrideOperator(str, Enum):
    REPLACE = "replace"
    ADD = "add"
    REMOVE = "remove"


class _Shape(BaseModel):
    model_config = ConfigDict(extra="allow")


class LabelSelector(_Shape):
    matchLabels: Dict[str, str] = Field(default_factory=dict)

    def matches(self, labels: Optional[dict]) -> bool:
        labels = labels or {}
        return all(labels.get(k) == v for k, v in self.matchLabels.items())


class ResourceSelector(_Shape):
    apiVersion: str
    kind: str
    name: Optional[str] = None
    namespace: Optional[str] = None
    labelSelector: Optional[LabelSelector] = None


class ClusterAffinity(_Shape):
    """Target clusters: by explicit name, or by label match."""
    clusterNames: List[str] = Field(default_factory=list)
    labelSelector: Optional[LabelSelector] = None

    def matches(self, cluster_name: str, labels: Optional[dict] = None) -> bool:
        if cluster_name in self.clusterNames:
            return True
        if self.labelSelector is not None:
            return self.labelSelector.matches(labels)
        return False


class PlaintextOverrider(_Shape):
    path: str
    operator: OverrideOperator
    value: Any = None


class Overriders(_Shape):
    plaintext: List[PlaintextOverrider] = Field(default_factory=list)


class OverridePolicySpec(_Shape):
    resourceSelectors: List[ResourceSelector] = Field(default_factory=list)
    targetCluster: Optional[ClusterAffinity] = None
    overriders: Overriders = Field(default_factory=Overriders)


def _in_source_order(dumped: Any, source: Any) -> Any:
    """Lay out `dumped` with the key order of `source`; keys new since the read go last."""
    if isinstance(dumped, dict) and isinstance(source, dict):
        keys = [k for k in source if k in dumped]
        keys += [k for k in dumped if k not in source]
        return {k: _in_source_order(dumped[k], source.get(k)) for k in keys}
    if isinstance(dumped, list) and isinstance(source, list):
        return [
            _in_source_order(item, source[i] if i < len(source) else None)
            for i, item in enumerate(dumped)
        ]
    return dumped


class OverridePolicy(_Shape):
    apiVersion: str = "policy.multicluster.io/v1alpha1"
    kind: str = "OverridePolicy"
    metadata: Dict[str, Any] = Field(default_factory=dict)
    spec: OverridePolicySpec = Field(default_factory=OverridePolicySpec)

    _source: Optional[dict] = PrivateAttr(default=None)

    @classmethod
    def from_object(cls, obj: dict) -> "OverridePolicy":
        policy = cls.model_validate(obj)
        policy._source = copy.deepcopy(obj)
        return policy

    def to_object(self) -> dict:
        obj = self.model_dump(mode="json", exclude_unset=True)
        if self._source is None:
            # Built in code: always carry type metadata
            return {"apiVersion": self.apiVersion, "kind": self.kind, **obj}
        return _in_source_order(obj, self._source)

    def targets(self, cluster_name: str, labels: Optional[dict] = None) -> bool:
        """An absent targetCluster selects every cluster."""
        if self.spec.targetCluster is None:
            return True
        return self.spec.targetCluster.matches(cluster_name, labels)
