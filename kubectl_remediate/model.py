import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Literal, Mapping

Severity = Literal["blocking", "warning", "info"]
SEVERITIES: tuple[str, ...] = ("blocking", "warning", "info")

# ----------------------------
# Parsing utilities
# ----------------------------


def load_json(path: str) -> dict[str, Any]:
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def _sorted(items, key=lambda o: (o.namespace, o.name)) -> tuple:
    return tuple(sorted(items, key=key))


def _freeze(obj, name: str) -> None:
    # read-only view over a private copy
    object.__setattr__(obj, name, MappingProxyType(dict(getattr(obj, name))))


# ----------------------------
# Cluster objects
# ----------------------------


@dataclass(frozen=True)
class ObjectRef:
    kind: str
    name: str
    namespace: str = ""

    def __str__(self) -> str:
        if self.namespace:
            return f"{self.kind}/{self.namespace}/{self.name}"
        return f"{self.kind}/{self.name}"

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind, "name": self.name, "namespace": self.namespace}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ObjectRef":
        return cls(data["kind"], data["name"], data.get("namespace", ""))


@dataclass(frozen=True)
class StorageClass:
    name: str
    is_default: bool = False
    provisioner: str = ""
    volume_binding_mode: str = "Immediate"


@dataclass(frozen=True)
class PersistentVolumeClaim:
    name: str
    namespace: str
    phase: str
    storage_class_name: str | None = None
    access_modes: tuple[str, ...] = ("ReadWriteOnce",)
    storage_request: str | None = None

    @property
    def ref(self) -> ObjectRef:
        return ObjectRef("PersistentVolumeClaim", self.name, self.namespace)


@dataclass(frozen=True)
class Node:
    name: str
    allocatable_memory: int = 0
    labels: Mapping[str, str] = field(default_factory=dict, hash=False)

    def __post_init__(self):
        _freeze(self, "labels")


@dataclass(frozen=True)
class Container:
    name: str
    requests: Mapping[str, str] = field(default_factory=dict, hash=False)

    def __post_init__(self):
        _freeze(self, "requests")


@dataclass(frozen=True)
class Pod:
    name: str
    namespace: str
    phase: str
    unschedulable_reason: str | None = None
    containers: tuple[Container, ...] = ()
    claims: tuple[str, ...] = ()
    owner: str | None = None  # owning Deployment, if any

    @property
    def ref(self) -> ObjectRef:
        return ObjectRef("Pod", self.name, self.namespace)

    def requests(self) -> dict[str, dict[str, str]]:
        return {c.name: dict(c.requests) for c in self.containers}


@dataclass(frozen=True)
class Deployment:
    name: str
    namespace: str
    replicas: int = 1


@dataclass(frozen=True)
class ClusterSnapshot:
    """
    Normalized, immutable view of all objects relevant to diagnosis.
    Captured once per run and passed by reference through the pipeline.
    """

    namespace: str
    storage_classes: tuple[StorageClass, ...] = ()
    pvcs: tuple[PersistentVolumeClaim, ...] = ()
    nodes: tuple[Node, ...] = ()
    pods: tuple[Pod, ...] = ()
    deployments: tuple[Deployment, ...] = ()
    namespace_exists: bool = True
    metrics_available: bool = True
    captured_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc), compare=False
    )

    def __post_init__(self):
        # Canonical ordering so equal cluster states compare equal
        object.__setattr__(
            self,
            "storage_classes",
            _sorted(self.storage_classes, key=lambda sc: sc.name),
        )
        object.__setattr__(self, "pvcs", _sorted(self.pvcs))
        object.__setattr__(self, "nodes", _sorted(self.nodes, key=lambda n: n.name))
        object.__setattr__(self, "pods", _sorted(self.pods))
        object.__setattr__(self, "deployments", _sorted(self.deployments))

    # ---- lookups ----

    def storage_class(self, name: str | None) -> StorageClass | None:
        for sc in self.storage_classes:
            if sc.name == name:
                return sc
        return None

    @property
    def default_storage_class(self) -> StorageClass | None:
        for sc in self.storage_classes:
            if sc.is_default:
                return sc
        return None

    def deployment(self, name: str | None, namespace: str) -> Deployment | None:
        for d in self.deployments:
            if d.name == name and d.namespace == namespace:
                return d
        return None

    @property
    def pending_pvcs(self) -> list[PersistentVolumeClaim]:
        return [pvc for pvc in self.pvcs if pvc.phase == "Pending"]

    @property
    def pending_pods(self) -> list[Pod]:
        return [pod for pod in self.pods if pod.phase == "Pending"]

    # ---- serialization ----

    def to_dict(self) -> dict[str, Any]:
        return {
            "namespace": self.namespace,
            "capturedAt": self.captured_at.isoformat(),
            "namespaceExists": self.namespace_exists,
            "metricsAvailable": self.metrics_available,
            "storageClasses": [
                {
                    "name": sc.name,
                    "isDefault": sc.is_default,
                    "provisioner": sc.provisioner,
                    "volumeBindingMode": sc.volume_binding_mode,
                }
                for sc in self.storage_classes
            ],
            "pvcs": [
                {
                    "name": p.name,
                    "namespace": p.namespace,
                    "phase": p.phase,
                    "storageClassName": p.storage_class_name,
                    "accessModes": list(p.access_modes),
                    "storage": p.storage_request,
                }
                for p in self.pvcs
            ],
            "nodes": [
                {
                    "name": n.name,
                    "allocatableMemory": n.allocatable_memory,
                    "labels": dict(n.labels),
                }
                for n in self.nodes
            ],
            "pods": [
                {
                    "name": p.name,
                    "namespace": p.namespace,
                    "phase": p.phase,
                    "unschedulableReason": p.unschedulable_reason,
                    "containers": [
                        {"name": c.name, "requests": dict(c.requests)}
                        for c in p.containers
                    ],
                    "claims": list(p.claims),
                    "owner": p.owner,
                }
                for p in self.pods
            ],
            "deployments": [
                {"name": d.name, "namespace": d.namespace, "replicas": d.replicas}
                for d in self.deployments
            ],
        }


def snapshot_from_dict(data: dict[str, Any]) -> ClusterSnapshot:
    """
    Build a snapshot from its JSON form. Missing sections are empty.
    """
    namespace = data.get("namespace", "default")

    captured = data.get("capturedAt")
    extra: dict[str, Any] = {}
    if captured:
        extra["captured_at"] = datetime.fromisoformat(captured.replace("Z", "+00:00"))

    return ClusterSnapshot(
        namespace=namespace,
        namespace_exists=data.get("namespaceExists", True),
        metrics_available=data.get("metricsAvailable", True),
        storage_classes=tuple(
            StorageClass(
                name=sc["name"],
                is_default=bool(sc.get("isDefault", False)),
                provisioner=sc.get("provisioner", ""),
                volume_binding_mode=sc.get("volumeBindingMode", "Immediate"),
            )
            for sc in data.get("storageClasses", [])
        ),
        pvcs=tuple(
            PersistentVolumeClaim(
                name=p["name"],
                namespace=p.get("namespace", namespace),
                phase=p.get("phase", "Pending"),
                storage_class_name=p.get("storageClassName"),
                access_modes=tuple(p.get("accessModes") or ["ReadWriteOnce"]),
                storage_request=p.get("storage"),
            )
            for p in data.get("pvcs", [])
        ),
        nodes=tuple(
            Node(
                name=n["name"],
                allocatable_memory=int(n.get("allocatableMemory", 0)),
                labels=dict(n.get("labels", {})),
            )
            for n in data.get("nodes", [])
        ),
        pods=tuple(
            Pod(
                name=p["name"],
                namespace=p.get("namespace", namespace),
                phase=p.get("phase", "Unknown"),
                unschedulable_reason=p.get("unschedulableReason"),
                containers=tuple(
                    Container(c["name"], dict(c.get("requests", {})))
                    for c in p.get("containers", [])
                ),
                claims=tuple(p.get("claims", [])),
                owner=p.get("owner"),
            )
            for p in data.get("pods", [])
        ),
        deployments=tuple(
            Deployment(
                name=d["name"],
                namespace=d.get("namespace", namespace),
                replicas=int(d.get("replicas", 1)),
            )
            for d in data.get("deployments", [])
        ),
        **extra,
    )


def load_snapshot(path: str) -> ClusterSnapshot:
    return snapshot_from_dict(load_json(path))


# ----------------------------
# Findings
# ----------------------------


@dataclass(frozen=True)
class Finding:
    rule_id: str
    severity: Severity
    affected_objects: tuple[ObjectRef, ...]
    message: str
    details: Mapping[str, Any] = field(default_factory=dict, hash=False)
    suggested_checks: tuple[str, ...] = ()

    def __post_init__(self):
        _freeze(self, "details")
        object.__setattr__(self, "affected_objects", tuple(self.affected_objects))
        object.__setattr__(self, "suggested_checks", tuple(self.suggested_checks))

    @property
    def blocking(self) -> bool:
        return self.severity == "blocking"

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule": self.rule_id,
            "severity": self.severity,
            "objects": [str(ref) for ref in self.affected_objects],
            "message": self.message,
            "details": dict(self.details),
            "suggested_checks": list(self.suggested_checks),
        }
