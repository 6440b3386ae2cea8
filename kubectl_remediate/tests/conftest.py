import pytest

from kubectl_remediate.errors import ClusterUnreachable
from kubectl_remediate.model import (
    ClusterSnapshot,
    Container,
    Deployment,
    Node,
    PersistentVolumeClaim,
    Pod,
    StorageClass,
)


class FakeControlPlane:
    """
    In-memory ControlPlane. Records every call; failures are injected per
    (verb, name) through `fail`.
    """

    def __init__(self, snapshot: ClusterSnapshot | None = None, reachable: bool = True):
        self.snapshot = snapshot or ClusterSnapshot(namespace="default")
        self.reachable = reachable
        self.calls: list[tuple] = []
        self.fail: dict[tuple[str, str], Exception] = {}
        self.absent: set[str] = set()
        self.reaches_phase = True
        self.disappears = True
        self.becomes_ready = True

    def _record(self, verb, name, *rest):
        self.calls.append((verb, name, *rest))
        error = self.fail.get((verb, name))
        if error is not None:
            raise error

    # ---- reads ----

    def ping(self):
        if not self.reachable:
            raise ClusterUnreachable("connection refused")

    def namespace_exists(self, namespace):
        return self.snapshot.namespace_exists

    def list_storage_classes(self):
        return list(self.snapshot.storage_classes)

    def list_pvcs(self, namespace):
        return [p for p in self.snapshot.pvcs if p.namespace == namespace]

    def list_nodes(self):
        return list(self.snapshot.nodes)

    def list_pods(self, namespace):
        return [p for p in self.snapshot.pods if p.namespace == namespace]

    def list_deployments(self, namespace):
        return [d for d in self.snapshot.deployments if d.namespace == namespace]

    def metrics_available(self):
        return self.snapshot.metrics_available

    # ---- writes ----

    def delete(self, kind, name, namespace):
        self._record("delete", name, kind, namespace)
        return name not in self.absent

    def apply(self, documents):
        for doc in documents:
            self._record("apply", doc["metadata"]["name"], doc)

    def scale(self, name, namespace, replicas):
        self._record("scale", name, replicas)

    # waits record the budget they were given as their last element

    def wait_for_phase(self, kind, name, namespace, phase, timeout):
        self._record("wait_phase", name, phase, timeout)
        return self.reaches_phase

    def wait_for_absent(self, kind, name, namespace, timeout):
        self._record("wait_absent", name, timeout)
        return self.disappears

    def wait_for_ready(self, name, namespace, timeout):
        self._record("wait_ready", name, timeout)
        return self.becomes_ready

    def timeouts(self, verb):
        return [c[-1] for c in self.calls if c[0] == verb]


@pytest.fixture
def fake_control_plane():
    return FakeControlPlane()


@pytest.fixture
def make_control_plane():
    return FakeControlPlane


@pytest.fixture
def pending_pvc():
    return PersistentVolumeClaim(
        name="lighthouse-data-pvc",
        namespace="ethereum",
        phase="Pending",
        storage_class_name="standard",
        access_modes=("ReadWriteOnce",),
        storage_request="50Gi",
    )


@pytest.fixture
def memory_starved_pod():
    return Pod(
        name="lighthouse-7d9f-abcde",
        namespace="ethereum",
        phase="Pending",
        unschedulable_reason="0/3 nodes are available: 3 Insufficient memory.",
        containers=(Container("lighthouse", {"memory": "2Gi", "cpu": "500m"}),),
        claims=("lighthouse-data-pvc",),
        owner="lighthouse",
    )


@pytest.fixture
def ethereum_snapshot(pending_pvc, memory_starved_pod):
    return ClusterSnapshot(
        namespace="ethereum",
        storage_classes=(
            StorageClass("standard-rwo", is_default=True, provisioner="pd.csi.storage.gke.io"),
        ),
        pvcs=(pending_pvc,),
        nodes=(Node("node-a", allocatable_memory=4 * 1024**3),),
        pods=(memory_starved_pod,),
        deployments=(Deployment("lighthouse", "ethereum", replicas=1),),
    )
