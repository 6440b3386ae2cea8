import logging
import time
from typing import Any, Protocol

import urllib3
from kubernetes import client, watch
from kubernetes import config as k8s_config
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException
from kubernetes.dynamic import DynamicClient
from kubernetes.dynamic.exceptions import DynamicApiError, ResourceNotFoundError

from kubectl_remediate.errors import (
    ClusterUnreachable,
    ControlPlaneRejected,
    InspectionFailed,
)
from kubectl_remediate.model import (
    Container,
    Deployment,
    Node,
    ObjectRef,
    PersistentVolumeClaim,
    Pod,
    StorageClass,
)
from kubectl_remediate.quantity import parse_memory

logger = logging.getLogger("kubectl_remediate.controlplane")

DEFAULT_CLASS_ANNOTATIONS = (
    "storageclass.kubernetes.io/is-default-class",
    "storageclass.beta.kubernetes.io/is-default-class",
)

# Connection-level failures; anything here means nobody answered
_TRANSPORT_ERRORS = (urllib3.exceptions.HTTPError, OSError)

# Seconds a watch may overrun its server-side timeout before the client gives up
WATCH_TIMEOUT_MARGIN = 5.0


class ControlPlane(Protocol):
    """
    Capability set the inspector and executor depend on.
    Reads return typed model objects, never raw API payloads.
    """

    def ping(self) -> None: ...

    def namespace_exists(self, namespace: str) -> bool: ...

    def list_storage_classes(self) -> list[StorageClass]: ...

    def list_pvcs(self, namespace: str) -> list[PersistentVolumeClaim]: ...

    def list_nodes(self) -> list[Node]: ...

    def list_pods(self, namespace: str) -> list[Pod]: ...

    def list_deployments(self, namespace: str) -> list[Deployment]: ...

    def metrics_available(self) -> bool: ...

    def delete(self, kind: str, name: str, namespace: str) -> bool:
        """Return False when the object was already absent."""
        ...

    def apply(self, documents: list[dict[str, Any]]) -> None: ...

    def scale(self, name: str, namespace: str, replicas: int) -> None: ...

    def wait_for_phase(
        self, kind: str, name: str, namespace: str, phase: str, timeout: float
    ) -> bool: ...

    def wait_for_ready(self, name: str, namespace: str, timeout: float) -> bool:
        """True once the Deployment has rolled out and all replicas are available."""
        ...

    def wait_for_absent(
        self, kind: str, name: str, namespace: str, timeout: float
    ) -> bool: ...


# ----------------------------
# API object conversion
# ----------------------------


def storage_class_from_api(sc: Any) -> StorageClass:
    annotations = sc.metadata.annotations or {}
    return StorageClass(
        name=sc.metadata.name,
        is_default=any(
            annotations.get(key) == "true" for key in DEFAULT_CLASS_ANNOTATIONS
        ),
        provisioner=sc.provisioner or "",
        volume_binding_mode=sc.volume_binding_mode or "Immediate",
    )


def pvc_from_api(pvc: Any) -> PersistentVolumeClaim:
    spec = pvc.spec
    requests = (spec.resources.requests or {}) if spec and spec.resources else {}
    return PersistentVolumeClaim(
        name=pvc.metadata.name,
        namespace=pvc.metadata.namespace,
        phase=(pvc.status.phase if pvc.status else None) or "Pending",
        storage_class_name=spec.storage_class_name if spec else None,
        access_modes=tuple((spec.access_modes if spec else None) or ["ReadWriteOnce"]),
        storage_request=requests.get("storage"),
    )


def node_from_api(node: Any) -> Node:
    allocatable = (node.status.allocatable if node.status else None) or {}
    memory = allocatable.get("memory")
    return Node(
        name=node.metadata.name,
        allocatable_memory=parse_memory(memory) if memory else 0,
        labels=dict(node.metadata.labels or {}),
    )


def _unschedulable_message(pod: Any) -> str | None:
    for cond in (pod.status.conditions if pod.status else None) or []:
        if (
            cond.type == "PodScheduled"
            and cond.status == "False"
            and cond.reason == "Unschedulable"
        ):
            return cond.message or cond.reason
    return None


def pod_from_api(pod: Any, rs_owners: dict[str, str] | None = None) -> Pod:
    """
    rs_owners maps ReplicaSet name -> owning Deployment name.
    """
    rs_owners = rs_owners or {}
    spec = pod.spec

    containers = []
    for c in (spec.containers if spec else None) or []:
        requests = (c.resources.requests if c.resources else None) or {}
        containers.append(Container(c.name, {k: str(v) for k, v in requests.items()}))

    claims = [
        v.persistent_volume_claim.claim_name
        for v in (spec.volumes if spec else None) or []
        if v.persistent_volume_claim is not None
    ]

    owner = None
    for ref in pod.metadata.owner_references or []:
        if ref.kind == "ReplicaSet" and ref.name in rs_owners:
            owner = rs_owners[ref.name]
            break

    return Pod(
        name=pod.metadata.name,
        namespace=pod.metadata.namespace,
        phase=(pod.status.phase if pod.status else None) or "Unknown",
        unschedulable_reason=_unschedulable_message(pod),
        containers=tuple(containers),
        claims=tuple(claims),
        owner=owner,
    )


def deployment_ready(deploy: Any) -> bool:
    replicas = deploy.spec.replicas if deploy.spec else None
    desired = 1 if replicas is None else replicas
    status = deploy.status
    if status is None:
        return desired == 0
    if (status.observed_generation or 0) < (deploy.metadata.generation or 0):
        return False
    return (status.updated_replicas or 0) >= desired and (
        status.available_replicas or 0
    ) >= desired


def deployment_from_api(deploy: Any) -> Deployment:
    replicas = deploy.spec.replicas if deploy.spec else None
    return Deployment(
        name=deploy.metadata.name,
        namespace=deploy.metadata.namespace,
        replicas=1 if replicas is None else replicas,
    )


# ----------------------------
# Kubernetes adapter
# ----------------------------


class KubernetesControlPlane:
    """
    ControlPlane backed by the official Kubernetes Python client.
    """

    # kind -> (api attribute, read method, delete method, list method)
    _KINDS = {
        "PersistentVolumeClaim": (
            "core",
            "read_namespaced_persistent_volume_claim",
            "delete_namespaced_persistent_volume_claim",
            "list_namespaced_persistent_volume_claim",
        ),
        "Pod": (
            "core",
            "read_namespaced_pod",
            "delete_namespaced_pod",
            "list_namespaced_pod",
        ),
        "ConfigMap": (
            "core",
            "read_namespaced_config_map",
            "delete_namespaced_config_map",
            "list_namespaced_config_map",
        ),
        "Service": (
            "core",
            "read_namespaced_service",
            "delete_namespaced_service",
            "list_namespaced_service",
        ),
        "Deployment": (
            "apps",
            "read_namespaced_deployment",
            "delete_namespaced_deployment",
            "list_namespaced_deployment",
        ),
    }

    def __init__(
        self,
        api_client: Any,
        field_manager: str = "kubectl-remediate",
        poll_interval: float = 2.0,
    ):
        self.api_client = api_client
        self.core = client.CoreV1Api(api_client)
        self.apps = client.AppsV1Api(api_client)
        self.storage = client.StorageV1Api(api_client)
        self.custom = client.CustomObjectsApi(api_client)
        self.field_manager = field_manager
        self.poll_interval = poll_interval
        self._dynamic: DynamicClient | None = None

    @classmethod
    def from_settings(cls, settings: Any) -> "KubernetesControlPlane":
        try:
            try:
                k8s_config.load_kube_config(
                    config_file=settings.kubeconfig, context=settings.context
                )
            except ConfigException:
                k8s_config.load_incluster_config()
        except ConfigException as e:
            raise ClusterUnreachable(f"No usable kubeconfig or in-cluster config: {e}", e)
        logger.debug(
            "Loaded Kubernetes config (kubeconfig=%s, context=%s)",
            settings.kubeconfig,
            settings.context,
        )
        return cls(client.ApiClient(), field_manager=settings.field_manager)

    # ---- error translation ----

    def _read(self, kind: str, namespace: str, fn, *args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except ApiException as e:
            if e.status == 0 or e.status is None:
                raise ClusterUnreachable(f"Control plane did not answer: {e.reason}", e)
            raise InspectionFailed(kind, namespace, e.status, e.reason)
        except _TRANSPORT_ERRORS as e:
            raise ClusterUnreachable(f"Cannot reach control plane: {e}", e)

    def _write(self, obj: str, fn, *args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except (ApiException, DynamicApiError) as e:
            status = getattr(e, "status", None)
            raise ControlPlaneRejected(status, str(getattr(e, "reason", e)), obj)
        except _TRANSPORT_ERRORS as e:
            raise ClusterUnreachable(f"Cannot reach control plane: {e}", e)

    def _api_for(self, kind: str):
        if kind not in self._KINDS:
            raise ControlPlaneRejected(None, f"unsupported kind '{kind}'", kind)
        attr, read, delete, list_ = self._KINDS[kind]
        api = getattr(self, attr)
        return getattr(api, read), getattr(api, delete), getattr(api, list_)

    # ---- reads ----

    def ping(self) -> None:
        version = self._read("version", "", client.VersionApi(self.api_client).get_code)
        logger.info("Connected to Kubernetes %s", getattr(version, "git_version", "?"))

    def namespace_exists(self, namespace: str) -> bool:
        try:
            self.core.read_namespace(namespace)
            return True
        except ApiException as e:
            if e.status == 404:
                return False
            if e.status == 0 or e.status is None:
                raise ClusterUnreachable(f"Control plane did not answer: {e.reason}", e)
            raise InspectionFailed("namespaces", namespace, e.status, e.reason)
        except _TRANSPORT_ERRORS as e:
            raise ClusterUnreachable(f"Cannot reach control plane: {e}", e)

    def list_storage_classes(self) -> list[StorageClass]:
        result = self._read("storageclasses", "", self.storage.list_storage_class)
        return [storage_class_from_api(sc) for sc in result.items]

    def list_pvcs(self, namespace: str) -> list[PersistentVolumeClaim]:
        result = self._read(
            "persistentvolumeclaims",
            namespace,
            self.core.list_namespaced_persistent_volume_claim,
            namespace,
        )
        return [pvc_from_api(p) for p in result.items]

    def list_nodes(self) -> list[Node]:
        result = self._read("nodes", "", self.core.list_node)
        return [node_from_api(n) for n in result.items]

    def list_pods(self, namespace: str) -> list[Pod]:
        replicasets = self._read(
            "replicasets", namespace, self.apps.list_namespaced_replica_set, namespace
        )
        rs_owners = {}
        for rs in replicasets.items:
            for ref in rs.metadata.owner_references or []:
                if ref.kind == "Deployment":
                    rs_owners[rs.metadata.name] = ref.name

        result = self._read("pods", namespace, self.core.list_namespaced_pod, namespace)
        return [pod_from_api(p, rs_owners) for p in result.items]

    def list_deployments(self, namespace: str) -> list[Deployment]:
        result = self._read(
            "deployments", namespace, self.apps.list_namespaced_deployment, namespace
        )
        return [deployment_from_api(d) for d in result.items]

    def metrics_available(self) -> bool:
        try:
            self.custom.list_cluster_custom_object("metrics.k8s.io", "v1beta1", "nodes")
            return True
        except (ApiException, *_TRANSPORT_ERRORS) as e:
            logger.debug("Node metrics unavailable: %s", e)
            return False

    # ---- writes ----

    def delete(self, kind: str, name: str, namespace: str) -> bool:
        _, delete, _ = self._api_for(kind)
        ref = str(ObjectRef(kind, name, namespace))
        try:
            delete(name, namespace)
        except ApiException as e:
            if e.status == 404:
                logger.info("%s already absent", ref)
                return False
            raise ControlPlaneRejected(e.status, e.reason, ref)
        except _TRANSPORT_ERRORS as e:
            raise ClusterUnreachable(f"Cannot reach control plane: {e}", e)
        logger.info("Deleted %s", ref)
        return True

    def _dynamic_client(self) -> DynamicClient:
        if self._dynamic is None:
            self._dynamic = self._write("discovery", DynamicClient, self.api_client)
        return self._dynamic

    def apply(self, documents: list[dict[str, Any]]) -> None:
        dyn = self._dynamic_client()
        for doc in documents:
            meta = doc.get("metadata", {})
            ref = str(
                ObjectRef(
                    doc.get("kind", "?"), meta.get("name", "?"), meta.get("namespace", "")
                )
            )
            try:
                resource = dyn.resources.get(
                    api_version=doc["apiVersion"], kind=doc["kind"]
                )
            except ResourceNotFoundError as e:
                raise ControlPlaneRejected(None, f"unknown resource type: {e}", ref)
            self._write(
                ref,
                dyn.server_side_apply,
                resource,
                body=doc,
                namespace=meta.get("namespace"),
                field_manager=self.field_manager,
                force_conflicts=True,
            )
            logger.info("Applied %s", ref)

    def scale(self, name: str, namespace: str, replicas: int) -> None:
        ref = str(ObjectRef("Deployment", name, namespace))
        self._write(
            ref,
            self.apps.patch_namespaced_deployment_scale,
            name,
            namespace,
            {"spec": {"replicas": replicas}},
        )
        logger.info("Scaled %s to %d", ref, replicas)

    # ---- waits ----

    def _watch_until(
        self, kind: str, name: str, namespace: str, timeout: float, done
    ) -> bool:
        """
        Watch one object until done(obj) holds or the timeout passes.
        The client-side read timeout bounds a stalled connection too.
        """
        _, _, list_ = self._api_for(kind)
        w = watch.Watch()
        try:
            for event in w.stream(
                list_,
                namespace,
                field_selector=f"metadata.name={name}",
                timeout_seconds=max(1, int(timeout)),
                _request_timeout=timeout + WATCH_TIMEOUT_MARGIN,
            ):
                if done(event["object"]):
                    return True
        except ApiException as e:
            raise ControlPlaneRejected(
                e.status, e.reason, str(ObjectRef(kind, name, namespace))
            )
        except _TRANSPORT_ERRORS as e:
            raise ClusterUnreachable(f"Cannot reach control plane: {e}", e)
        finally:
            w.stop()
        return False

    def wait_for_phase(
        self, kind: str, name: str, namespace: str, phase: str, timeout: float
    ) -> bool:
        def reached(obj) -> bool:
            current = obj.status.phase if obj.status else None
            logger.debug("%s/%s phase=%s", kind, name, current)
            return current == phase

        return self._watch_until(kind, name, namespace, timeout, reached)

    def wait_for_ready(self, name: str, namespace: str, timeout: float) -> bool:
        return self._watch_until(
            "Deployment", name, namespace, timeout, deployment_ready
        )

    def wait_for_absent(
        self, kind: str, name: str, namespace: str, timeout: float
    ) -> bool:
        read, _, _ = self._api_for(kind)
        deadline = time.monotonic() + timeout
        while True:
            try:
                read(
                    name,
                    namespace,
                    _request_timeout=max(0.0, deadline - time.monotonic())
                    + WATCH_TIMEOUT_MARGIN,
                )
            except ApiException as e:
                if e.status == 404:
                    return True
                raise ControlPlaneRejected(
                    e.status, e.reason, str(ObjectRef(kind, name, namespace))
                )
            except _TRANSPORT_ERRORS as e:
                raise ClusterUnreachable(f"Cannot reach control plane: {e}", e)
            if time.monotonic() >= deadline:
                return False
            time.sleep(self.poll_interval)
