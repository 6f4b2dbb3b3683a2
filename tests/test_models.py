from membership_operator.models import ClusterRecord


def _cluster_object(**metadata):
    obj = {
        "apiVersion": "cluster.multicluster.io/v1alpha1",
        "kind": "Cluster",
        "metadata": {"name": "east-1", "resourceVersion": "42", **metadata},
        "spec": {"apiEndpoint": "https://east-1.example.com:6443"},
        "status": {"conditions": [{"type": "Ready", "status": "True"}]},
    }
    return obj


def test_from_object_reads_metadata_and_conditions():
    record = ClusterRecord.from_object(_cluster_object(
        finalizers=["a/b"], deletionTimestamp="2026-10-18T10:00:00Z", labels={"region": "east"},
    ))

    assert record.name == "east-1"
    assert record.finalizers == ["a/b"]
    assert record.terminating
    assert record.resource_version == "42"
    assert record.labels == {"region": "east"}
    assert record.conditions == [{"type": "Ready", "status": "True"}]


def test_to_object_carries_finalizers_and_keeps_the_rest():
    record = ClusterRecord.from_object(_cluster_object())
    record.finalizers.append("a/b")

    obj = record.to_object()

    assert obj["metadata"]["finalizers"] == ["a/b"]
    assert obj["metadata"]["resourceVersion"] == "42"
    assert obj["spec"] == {"apiEndpoint": "https://east-1.example.com:6443"}
    assert "finalizers" not in record.raw["metadata"]


def test_active_record_without_status():
    obj = _cluster_object()
    del obj["status"]
    record = ClusterRecord.from_object(obj)
    assert not record.terminating
    assert record.conditions == []
