import logging
from unittest.mock import MagicMock, patch

import kopf
import pytest

from membership_operator import operator
from membership_operator.config import FINALIZER
from membership_operator.controller import ClusterController, Result
from membership_operator.errors import InvalidSpaceNameError, StoreError

log = logging.getLogger("test")


def _memo(controller):
    memo = kopf.Memo()
    memo.controller = controller
    return memo


def test_apply_result_converged():
    assert operator.apply_result("east-1", Result()) is None


def test_apply_result_requeue_is_temporary():
    with pytest.raises(kopf.TemporaryError) as info:
        operator.apply_result("east-1", Result(requeue=True, delay=12, reason="pending"))
    assert info.value.delay == 12


def test_apply_result_failure_is_permanent():
    with pytest.raises(kopf.PermanentError):
        operator.apply_result("east-1", Result(reason="bad name", error=InvalidSpaceNameError("bad name")))


def test_reconcile_handler_drives_controller(clusters, spaces):
    controller = ClusterController(clusters, spaces)
    clusters.add("east-1")

    operator.reconcile_cluster(name="east-1", memo=_memo(controller), logger=log)

    assert FINALIZER in clusters.get("east-1").finalizers
    assert "exec-east-1" in spaces.spaces


def test_reconcile_handler_retries_pending_deletion(clusters, async_spaces):
    controller = ClusterController(clusters, async_spaces, requeue_delay=4)
    clusters.add("east-1", finalizers=[FINALIZER], terminating=True)
    async_spaces.add("exec-east-1")

    with pytest.raises(kopf.TemporaryError):
        operator.reconcile_cluster(name="east-1", memo=_memo(controller), logger=log)
    assert FINALIZER in clusters.get("east-1").finalizers


def test_resync_handler_logs_instead_of_raising(clusters, spaces, transient_error):
    controller = ClusterController(clusters, spaces)
    clusters.add("east-1")
    spaces.failures["get"] = transient_error

    assert operator.resync_cluster(name="east-1", memo=_memo(controller), logger=log) is None


def test_startup_populates_registry(clusters, spaces):
    clusters.add("east-1", finalizers=[FINALIZER])
    settings = kopf.OperatorSettings()
    memo = kopf.Memo()

    with patch.object(operator, "build_controller", return_value=ClusterController(clusters, spaces)), \
            patch.object(operator, "start_http_server") as server:
        operator.configure(settings=settings, memo=memo)

    assert settings.execution.max_workers == operator.MAX_WORKERS
    assert memo.controller.registry.names() == ["east-1"]
    server.assert_called_once_with(operator.METRICS_PORT)


def test_startup_survives_unreachable_store(clusters, spaces):
    clusters.failures["list"] = StoreError("connection refused")
    memo = kopf.Memo()

    with patch.object(operator, "build_controller", return_value=ClusterController(clusters, spaces)), \
            patch.object(operator, "start_http_server"):
        operator.configure(settings=kopf.OperatorSettings(), memo=memo)

    assert len(memo.controller.registry) == 0


def test_delete_handler_requires_kopf_finalizer():
    registry = kopf.get_default_registry()
    handlers = [
        h for h in registry._changing.get_all_handlers()
        if h.fn is operator.reconcile_cluster and h.reason == kopf.Reason.DELETE
    ]

    assert len(handlers) == 1
    assert handlers[0].requires_finalizer is True
