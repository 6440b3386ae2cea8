import logging

from kubectl_remediate.controlplane import ControlPlane
from kubectl_remediate.model import ClusterSnapshot

logger = logging.getLogger("kubectl_remediate.inspector")


class ClusterInspector:
    """
    Captures a read-only ClusterSnapshot through a ControlPlane.

    Raises ClusterUnreachable when the control plane cannot be contacted
    and InspectionFailed when a read is rejected. A missing namespace is
    not an error: it yields empty namespaced sets.
    """

    def __init__(self, control_plane: ControlPlane):
        self.control_plane = control_plane

    def snapshot(self, namespace: str) -> ClusterSnapshot:
        cp = self.control_plane
        cp.ping()

        # ----------------------------
        # Cluster-scoped objects
        # ----------------------------
        storage_classes = cp.list_storage_classes()
        nodes = cp.list_nodes()
        metrics_available = cp.metrics_available()

        # ----------------------------
        # Namespaced objects
        # ----------------------------
        namespace_exists = cp.namespace_exists(namespace)
        if namespace_exists:
            pvcs = cp.list_pvcs(namespace)
            pods = cp.list_pods(namespace)
            deployments = cp.list_deployments(namespace)
        else:
            logger.warning("Namespace '%s' does not exist", namespace)
            pvcs, pods, deployments = [], [], []

        snapshot = ClusterSnapshot(
            namespace=namespace,
            storage_classes=tuple(storage_classes),
            pvcs=tuple(pvcs),
            nodes=tuple(nodes),
            pods=tuple(pods),
            deployments=tuple(deployments),
            namespace_exists=namespace_exists,
            metrics_available=metrics_available,
        )
        logger.info(
            "Snapshot of '%s': %d storage classes, %d PVCs, %d nodes, %d pods",
            namespace,
            len(snapshot.storage_classes),
            len(snapshot.pvcs),
            len(snapshot.nodes),
            len(snapshot.pods),
        )
        return snapshot
