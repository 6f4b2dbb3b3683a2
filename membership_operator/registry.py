"""
Cluster registry — which member clusters are joined and where their work goes.

One instance per process, built at startup and passed to whoever needs it.
Readers on the propagation side rely on: a cluster is present here only
while it is active and its execution space exists.
"""

import logging
import threading
from typing import Optional

from .errors import InvalidSpaceNameError
from .names import space_name

logger = logging.getLogger("registry")


class ClusterRegistry:
    def __init__(self):
        self._lock = threading.Lock()
        self._spaces: dict[str, str] = {}

    def register(self, cluster_name: str, execution_space: str):
        with self._lock:
            self._spaces[cluster_name] = execution_space

    def unregister(self, cluster_name: str) -> bool:
        with self._lock:
            return self._spaces.pop(cluster_name, None) is not None

    def execution_space(self, cluster_name: str) -> Optional[str]:
        with self._lock:
            return self._spaces.get(cluster_name)

    def is_active(self, cluster_name: str) -> bool:
        with self._lock:
            return cluster_name in self._spaces

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._spaces)

    def __len__(self) -> int:
        with self._lock:
            return len(self._spaces)

    def populate(self, cluster_store, finalizer: str) -> int:
        """
        Load joined clusters from the store: active records that already
        carry the controller's finalizer. Returns the number registered.
        """
        count = 0
        for record in cluster_store.list():
            if record.terminating or finalizer not in record.finalizers:
                continue
            try:
                self.register(record.name, space_name(record.name))
                count += 1
            except InvalidSpaceNameError as e:
                logger.error(f"Skipping cluster {record.name}: {e}")
        logger.info(f"Cluster registry populated with {count} cluster(s)")
        return count
