from kubectl_remediate.engine import RuleEngine
from kubectl_remediate.loader import load_rules
from kubectl_remediate.model import (
    ClusterSnapshot,
    Container,
    Deployment,
    Node,
    PersistentVolumeClaim,
    Pod,
    StorageClass,
)
from kubectl_remediate.rules.cluster.namespace_missing import NamespaceMissingRule
from kubectl_remediate.rules.cluster.no_metrics_server import NoMetricsServerRule
from kubectl_remediate.rules.scheduling.insufficient_resources import (
    PendingPodInsufficientResourcesRule,
)
from kubectl_remediate.rules.scheduling.request_exceeds_node_capacity import (
    RequestExceedsNodeCapacityRule,
)
from kubectl_remediate.rules.storage.no_default_storageclass import (
    NoDefaultStorageClassRule,
)
from kubectl_remediate.rules.storage.unbound_pvc import UnboundPVCRule


def rule_ids(findings):
    return [f.rule_id for f in findings]


def test_no_default_storageclass():
    snapshot = ClusterSnapshot(
        namespace="default",
        storage_classes=(StorageClass("gp2"), StorageClass("fast-ssd")),
    )
    findings = RuleEngine(rules=[NoDefaultStorageClassRule()]).evaluate(snapshot)

    assert rule_ids(findings) == ["NoDefaultStorageClass"]
    assert findings[0].severity == "warning"
    assert findings[0].details["available"] == ["fast-ssd", "gp2"]


def test_default_storageclass_present():
    snapshot = ClusterSnapshot(
        namespace="default",
        storage_classes=(StorageClass("standard-rwo", is_default=True),),
    )
    assert RuleEngine(rules=[NoDefaultStorageClassRule()]).evaluate(snapshot) == []


def test_unbound_pvc_details(ethereum_snapshot):
    findings = RuleEngine(rules=[UnboundPVCRule()]).evaluate(ethereum_snapshot)

    assert len(findings) == 1
    f = findings[0]
    assert f.blocking
    assert "ethereum" in f.message
    assert "missing StorageClass 'standard'" in f.message
    assert f.details["storage_class_exists"] is False
    assert f.details["storage"] == "50Gi"
    assert f.details["consumers"] == [{"name": "lighthouse", "replicas": 1}]


def test_unbound_pvc_once_per_pending_claim():
    pvcs = tuple(
        PersistentVolumeClaim(f"data-{i}", "apps", "Pending", "missing") for i in range(3)
    ) + (PersistentVolumeClaim("bound", "apps", "Bound", "gp2"),)
    snapshot = ClusterSnapshot(namespace="apps", pvcs=pvcs)

    findings = RuleEngine(rules=[UnboundPVCRule()]).evaluate(snapshot)

    assert [f.details["pvc"] for f in findings] == ["data-0", "data-1", "data-2"]


def test_insufficient_resources(ethereum_snapshot):
    findings = RuleEngine(rules=[PendingPodInsufficientResourcesRule()]).evaluate(
        ethereum_snapshot
    )

    assert len(findings) == 1
    details = findings[0].details
    assert details["insufficient"] == ["memory"]
    assert details["owner"] == "lighthouse"
    assert details["requests"] == {"lighthouse": {"memory": "2Gi", "cpu": "500m"}}


def test_taint_blocked_pod_is_not_insufficient_resources():
    pod = Pod(
        "web-1",
        "default",
        "Pending",
        unschedulable_reason="0/1 nodes are available: 1 node(s) had untolerated taint.",
    )
    snapshot = ClusterSnapshot(namespace="default", pods=(pod,))
    rule = PendingPodInsufficientResourcesRule()
    assert not rule.matches(snapshot)


def test_request_exceeds_node_capacity():
    pod = Pod(
        "geth-1",
        "ethereum",
        "Pending",
        unschedulable_reason="0/1 nodes are available: 1 Insufficient memory.",
        containers=(Container("geth", {"memory": "8Gi"}),),
    )
    snapshot = ClusterSnapshot(
        namespace="ethereum",
        pods=(pod,),
        nodes=(Node("small", allocatable_memory=4 * 1024**3),),
    )
    findings = RuleEngine(rules=[RequestExceedsNodeCapacityRule()]).evaluate(snapshot)

    assert rule_ids(findings) == ["RequestExceedsNodeCapacity"]
    assert "8Gi" in findings[0].message
    assert "4Gi" in findings[0].message


def test_metrics_and_namespace_rules():
    snapshot = ClusterSnapshot(
        namespace="ghost", namespace_exists=False, metrics_available=False
    )
    engine = RuleEngine(rules=[NoMetricsServerRule(), NamespaceMissingRule()])
    findings = engine.evaluate(snapshot)

    # priority order: NamespaceMissing (5) before NoMetricsServer (90)
    assert rule_ids(findings) == ["NamespaceMissing", "NoMetricsServer"]
    assert not any(f.blocking for f in findings)


def test_zone_hint_yaml_rule():
    rules = [r for r in load_rules() if r.name == "ManagedClusterZoneHint"]
    assert len(rules) == 1

    snapshot = ClusterSnapshot(
        namespace="ethereum",
        nodes=(Node("gke-a", labels={"cloud.google.com/gke-nodepool": "pool-1"}),),
        pvcs=(PersistentVolumeClaim("data", "ethereum", "Pending"),),
    )
    findings = RuleEngine(rules=rules).evaluate(snapshot)

    assert rule_ids(findings) == ["ManagedClusterZoneHint"]
    assert [str(o) for o in findings[0].affected_objects] == ["Node/gke-a"]


def test_default_rules_on_healthy_namespace():
    snapshot = ClusterSnapshot(
        namespace="ethereum",
        storage_classes=(StorageClass("standard-rwo", is_default=True),),
        pvcs=(PersistentVolumeClaim("data", "ethereum", "Bound", "standard-rwo"),),
        pods=(Pod("geth-1", "ethereum", "Running", owner="geth"),),
        deployments=(Deployment("geth", "ethereum"),),
    )
    assert RuleEngine().evaluate(snapshot) == []
