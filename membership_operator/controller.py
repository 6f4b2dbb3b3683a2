"""
Cluster membership controller.

  Cluster record → reconcile(name):
    Active       ensure execution space (exec-{cluster}) → ensure finalizer
    Terminating  delete execution space → confirm it is gone → drop finalizer

Nothing about progress is stored. Every pass reads both stores, derives a
ClusterState and picks the next Action from a fixed transition table, so a
pass can be interrupted at any point and simply run again.

The finalizer is dropped only after a read confirms the space is absent.
Namespace deletion is asynchronous, so "delete accepted" is not enough.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from . import finalizers, metrics
from .config import (
    EXECUTION_SPACE_LABEL, EXECUTION_SPACE_LABEL_VALUE, FINALIZER, REQUEUE_DELAY,
)
from .errors import (
    AlreadyExistsError, FinalizerError, InvalidSpaceNameError, NotFoundError, StoreError,
)
from .events import EventPublisher
from .models import ClusterRecord
from .names import space_name
from .registry import ClusterRegistry
from .stores import ClusterStore, SpaceStore

logger = logging.getLogger("cluster-controller")


# ---------------------------------------------------------------------------
# Derived state + transition table
# ---------------------------------------------------------------------------

class ClusterState(str, Enum):
    UNJOINED = "Unjoined"            # active, no finalizer, no space
    SPACE_ONLY = "SpaceOnly"         # active, no finalizer, space exists
    SPACE_MISSING = "SpaceMissing"   # active, finalizer, space gone
    JOINED = "Joined"                # active, finalizer, space exists
    DRAINING = "Draining"            # terminating, finalizer, space still visible
    RELEASABLE = "Releasable"        # terminating, finalizer, space confirmed absent
    FINALIZED = "Finalized"          # terminating, finalizer already gone


class Action(str, Enum):
    CREATE_SPACE_AND_ADD_FINALIZER = "CreateSpaceAndAddFinalizer"
    ADD_FINALIZER = "AddFinalizer"
    CREATE_SPACE = "CreateSpace"
    NONE = "None"
    DELETE_SPACE = "DeleteSpace"
    REMOVE_FINALIZER = "RemoveFinalizer"


TRANSITIONS = {
    ClusterState.UNJOINED: Action.CREATE_SPACE_AND_ADD_FINALIZER,
    ClusterState.SPACE_ONLY: Action.ADD_FINALIZER,
    ClusterState.SPACE_MISSING: Action.CREATE_SPACE,
    ClusterState.JOINED: Action.NONE,
    ClusterState.DRAINING: Action.DELETE_SPACE,
    ClusterState.RELEASABLE: Action.REMOVE_FINALIZER,
    ClusterState.FINALIZED: Action.NONE,
}


def derive_state(terminating: bool, has_finalizer: bool, space_exists: bool) -> ClusterState:
    if terminating:
        if not has_finalizer:
            return ClusterState.FINALIZED
        return ClusterState.DRAINING if space_exists else ClusterState.RELEASABLE
    if has_finalizer:
        return ClusterState.JOINED if space_exists else ClusterState.SPACE_MISSING
    return ClusterState.SPACE_ONLY if space_exists else ClusterState.UNJOINED


def next_action(state: ClusterState) -> Action:
    return TRANSITIONS[state]


# ---------------------------------------------------------------------------
# Reconcile result
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Result:
    """
    What the dispatcher should do with the request.

    requeue=True   try again after `delay` seconds
    error only     non-retryable fault, do not requeue
    neither        converged
    """
    requeue: bool = False
    delay: float = 0.0
    reason: str = ""
    error: Optional[BaseException] = None

    @property
    def failed(self) -> bool:
        return self.error is not None and not self.requeue


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------

class ClusterController:
    def __init__(self, clusters: ClusterStore, spaces: SpaceStore,
                 registry: Optional[ClusterRegistry] = None,
                 events: Optional[EventPublisher] = None,
                 finalizer: str = FINALIZER,
                 requeue_delay: float = REQUEUE_DELAY):
        if not finalizer:
            raise FinalizerError("controller finalizer token must not be empty")
        self.clusters = clusters
        self.spaces = spaces
        self.registry = registry if registry is not None else ClusterRegistry()
        self.events = events if events is not None else EventPublisher()
        self.finalizer = finalizer
        self.requeue_delay = requeue_delay
        self.space_labels = {EXECUTION_SPACE_LABEL: EXECUTION_SPACE_LABEL_VALUE}

    def reconcile(self, name: str) -> Result:
        """Load the current record and drive it one pass toward its desired state."""
        logger.debug(f"Reconciling cluster {name}")
        try:
            record = self.clusters.get(name)
        except NotFoundError:
            # Already purged; nothing left to converge
            logger.debug(f"Cluster {name} no longer exists")
            self._forget(name)
            return Result()
        except StoreError as e:
            return self._retry(name, "get", f"Failed to read cluster {name}: {e}", e)

        if record.terminating:
            return self.teardown(record)
        return self.sync(record)

    # --- Active -----------------------------------------------------------

    def sync(self, record: ClusterRecord) -> Result:
        """Ensure the execution space exists, then ensure the finalizer is present."""
        try:
            space = space_name(record.name)
        except InvalidSpaceNameError as e:
            return self._fail(record.name, "sync", e)

        try:
            exists = self.space_exists(space)
        except StoreError as e:
            return self._retry(record.name, "sync", f"Could not get execution space {space}: {e}", e)

        state = derive_state(False, finalizers.has(record, self.finalizer), exists)
        action = next_action(state)
        logger.debug(f"Cluster {record.name}: state={state.value} action={action.value}")

        if action in (Action.CREATE_SPACE_AND_ADD_FINALIZER, Action.CREATE_SPACE):
            try:
                created = self.ensure_space(space)
            except StoreError as e:
                return self._retry(
                    record.name, "sync", f"Failed to create execution space {space}: {e}", e
                )
            if created:
                self.events.publish(record.name, "SPACE_CREATED", f"Execution space {space} created", state.value)

        if action in (Action.CREATE_SPACE_AND_ADD_FINALIZER, Action.ADD_FINALIZER):
            try:
                self.ensure_finalizer(record)
            except StoreError as e:
                return self._retry(record.name, "sync", f"Failed to add finalizer: {e}", e)
            self.events.publish(record.name, "FINALIZER_ADDED", "Cluster joined", state.value)

        self.registry.register(record.name, space)
        metrics.JOINED_CLUSTERS.set(len(self.registry))
        metrics.RECONCILES.labels(operation="sync", result="success").inc()
        return Result()

    # --- Terminating ------------------------------------------------------

    def teardown(self, record: ClusterRecord) -> Result:
        """Delete the execution space and release the finalizer once it is confirmed gone."""
        if not finalizers.has(record, self.finalizer):
            logger.debug(f"Cluster {record.name} already finalized")
            self._forget(record.name)
            return Result()

        try:
            space = space_name(record.name)
        except InvalidSpaceNameError as e:
            return self._fail(record.name, "teardown", e)

        # Stop handing out the space before it starts going away
        self._forget(record.name)

        try:
            self.spaces.delete(space)
        except NotFoundError:
            logger.info(f"Execution space {space} already gone")
            return self._release(record, space)
        except StoreError as e:
            metrics.SPACE_OPERATIONS.labels(operation="delete", result="error").inc()
            return self._retry(
                record.name, "teardown", f"Failed to remove execution space {space}: {e}", e
            )
        metrics.SPACE_OPERATIONS.labels(operation="delete", result="success").inc()

        try:
            exists = self.space_exists(space)
        except StoreError as e:
            return self._retry(
                record.name, "teardown", f"Failed to check whether execution space {space} exists: {e}", e
            )

        state = derive_state(True, True, exists)
        if next_action(state) is Action.DELETE_SPACE:
            logger.info(f"Cluster {record.name}: waiting for execution space {space} to be deleted")
            self.events.publish(record.name, "SPACE_DELETING", f"Execution space {space} is terminating", state.value)
            metrics.REQUEUES.labels(reason="deletion-pending").inc()
            return Result(requeue=True, delay=self.requeue_delay,
                          reason=f"execution space {space} is still being deleted")

        return self._release(record, space)

    def _release(self, record: ClusterRecord, space: str) -> Result:
        try:
            self.remove_finalizer(record)
        except StoreError as e:
            return self._retry(record.name, "teardown", f"Failed to remove finalizer: {e}", e)
        logger.info(f"Cluster {record.name}: execution space {space} removed, finalizer released")
        self.events.publish(record.name, "FINALIZER_REMOVED", "Cluster left", ClusterState.RELEASABLE.value)
        self.events.discard(record.name)
        metrics.RECONCILES.labels(operation="teardown", result="success").inc()
        return Result()

    # --- Execution space helpers ------------------------------------------

    def space_exists(self, space: str) -> bool:
        try:
            self.spaces.get(space)
        except NotFoundError:
            return False
        return True

    def ensure_space(self, space: str) -> bool:
        """
        Create the space; losing a create race to another actor counts as success.

        Returns True only when this call created it.
        """
        try:
            self.spaces.create(space, self.space_labels)
        except AlreadyExistsError:
            logger.info(f"Execution space {space} already exists")
            metrics.SPACE_OPERATIONS.labels(operation="create", result="exists").inc()
            return False
        except StoreError:
            metrics.SPACE_OPERATIONS.labels(operation="create", result="error").inc()
            raise
        metrics.SPACE_OPERATIONS.labels(operation="create", result="success").inc()
        return True

    # --- Finalizer helpers ------------------------------------------------

    def ensure_finalizer(self, record: ClusterRecord) -> ClusterRecord:
        if not finalizers.add(record, self.finalizer):
            return record
        updated = self.clusters.update(record)
        logger.info(f"Finalizer {self.finalizer} added to cluster {record.name}")
        return updated

    def remove_finalizer(self, record: ClusterRecord) -> ClusterRecord:
        if not finalizers.remove(record, self.finalizer):
            return record
        return self.clusters.update(record)

    # --- Outcomes ---------------------------------------------------------

    def _forget(self, name: str):
        if self.registry.unregister(name):
            metrics.JOINED_CLUSTERS.set(len(self.registry))

    def _retry(self, name: str, operation: str, message: str, error: BaseException) -> Result:
        logger.error(f"Cluster {name}: {message}")
        metrics.RECONCILES.labels(operation=operation, result="retry").inc()
        metrics.REQUEUES.labels(reason="store-error").inc()
        return Result(requeue=True, delay=self.requeue_delay, reason=message, error=error)

    def _fail(self, name: str, operation: str, error: BaseException) -> Result:
        logger.error(f"Cluster {name}: {operation} cannot proceed, not retrying: {error}")
        metrics.RECONCILES.labels(operation=operation, result="failed").inc()
        self.events.publish(name, "RECONCILE_FAILED", str(error)[:200])
        return Result(reason=str(error), error=error)
