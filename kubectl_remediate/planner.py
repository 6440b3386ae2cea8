import logging
from typing import Any

from kubectl_remediate.actions import (
    ApplyManifest,
    DeleteObject,
    RemediationAction,
    RemediationPlan,
    ScaleDeployment,
)
from kubectl_remediate.config import DEFAULT_PREFERRED_CLASSES
from kubectl_remediate.errors import (
    ManifestObjectMissing,
    NoViableStorageClass,
    PlanningError,
    RequestsNotReducible,
)
from kubectl_remediate.manifest import (
    ManifestTemplate,
    pvc_document,
    render_documents,
    set_container_request,
    set_storage_class,
)
from kubectl_remediate.model import ClusterSnapshot, Finding, ObjectRef, StorageClass
from kubectl_remediate.quantity import reduce_request
from kubectl_remediate.reasons import REDUCIBLE_RESOURCES

logger = logging.getLogger("kubectl_remediate.planner")

# Plan phases, in execution order
PHASES = ("scale_down", "delete", "apply_storage", "apply_workload", "scale_up")


class RemediationPlanner:
    """
    Turns blocking findings into an ordered, deterministic action list.

    Planning errors are collected per finding; a finding that cannot be
    planned contributes no actions and does not affect the others.
    """

    def __init__(
        self,
        storage_classes: tuple[StorageClass, ...] | list[StorageClass],
        preferred_classes: tuple[str, ...] = DEFAULT_PREFERRED_CLASSES,
        template: ManifestTemplate | None = None,
        memory_floor: str = "256Mi",
        cpu_floor: str = "100m",
        delete_timeout: float = 120.0,
        bind_timeout: float = 300.0,
        ready_timeout: float = 600.0,
    ):
        self.storage_classes = tuple(storage_classes)
        self.preferred_classes = tuple(preferred_classes)
        self.template = template or ManifestTemplate.empty()
        self.floors = {"memory": memory_floor, "cpu": cpu_floor}
        self.delete_timeout = delete_timeout
        self.bind_timeout = bind_timeout
        self.ready_timeout = ready_timeout

        self._handlers = {
            "UnboundPVC": self._plan_unbound_pvc,
            "PendingPodInsufficientResources": self._plan_insufficient_resources,
        }

    @classmethod
    def from_settings(
        cls,
        snapshot: ClusterSnapshot,
        settings: Any,
        template: ManifestTemplate | None = None,
    ) -> "RemediationPlanner":
        return cls(
            snapshot.storage_classes,
            preferred_classes=settings.preferred_storage_classes,
            template=template,
            memory_floor=settings.memory_floor,
            cpu_floor=settings.cpu_floor,
            delete_timeout=settings.delete_timeout,
            bind_timeout=settings.bind_timeout,
            ready_timeout=settings.ready_timeout,
        )

    # ----------------------------
    # Storage class selection
    # ----------------------------

    def select_storage_class(self) -> StorageClass:
        """
        (a) first allowlisted class present in the cluster,
        (b) the cluster default,
        otherwise NoViableStorageClass. A class name is never invented.
        """
        by_name = {sc.name: sc for sc in self.storage_classes}
        for name in self.preferred_classes:
            if name in by_name:
                return by_name[name]
        for sc in self.storage_classes:
            if sc.is_default:
                return sc

        available = ", ".join(sorted(by_name)) or "none"
        raise NoViableStorageClass(
            "No preferred StorageClass "
            f"({', '.join(self.preferred_classes) or 'none configured'}) "
            f"and no default StorageClass in the cluster (available: {available})"
        )

    # ----------------------------
    # Per-finding planning
    # ----------------------------

    def _plan_unbound_pvc(self, finding: Finding) -> dict[str, list[RemediationAction]]:
        details = finding.details
        name, namespace = details["pvc"], details["namespace"]
        sc = self.select_storage_class()

        doc = self.template.find("PersistentVolumeClaim", name, namespace)
        if doc is not None:
            set_storage_class(doc, sc.name)
        elif details.get("storage"):
            doc = pvc_document(
                name,
                namespace,
                sc.name,
                details.get("access_modes") or ["ReadWriteOnce"],
                details["storage"],
            )
        else:
            raise ManifestObjectMissing(
                f"PVC '{name}' is not in the manifest template and its "
                "storage request is unknown"
            )

        # Volumes of WaitForFirstConsumer classes bind only once a Pod is scheduled
        wait_for = ()
        if sc.volume_binding_mode == "Immediate":
            wait_for = (ObjectRef("PersistentVolumeClaim", name, namespace),)

        consumers = [c for c in details.get("consumers", []) if c["replicas"] > 0]
        logger.debug(
            "PVC %s/%s -> StorageClass %s (consumers: %s)",
            namespace,
            name,
            sc.name,
            [c["name"] for c in consumers] or "none",
        )

        return {
            "scale_down": [ScaleDeployment(c["name"], namespace, 0) for c in consumers],
            "delete": [
                DeleteObject(
                    "PersistentVolumeClaim", name, namespace, self.delete_timeout
                )
            ],
            "apply_storage": [
                ApplyManifest(
                    render_documents([doc]),
                    wait_for=wait_for,
                    wait_phase="Bound",
                    timeout_seconds=self.bind_timeout,
                )
            ],
            "scale_up": [
                ScaleDeployment(
                    c["name"],
                    namespace,
                    c["replicas"],
                    wait_ready=True,
                    timeout_seconds=self.ready_timeout,
                )
                for c in consumers
            ],
        }

    def _plan_insufficient_resources(
        self, finding: Finding
    ) -> dict[str, list[RemediationAction]]:
        details = finding.details
        pod, namespace, owner = details["pod"], details["namespace"], details.get("owner")

        if not owner:
            raise ManifestObjectMissing(
                f"Pod '{pod}' has no owning Deployment to regenerate"
            )
        doc = self.template.find("Deployment", owner, namespace)
        if doc is None:
            raise ManifestObjectMissing(
                f"Deployment '{owner}' is not in the manifest template "
                f"({self.template.source})"
            )

        reducible = [r for r in details.get("insufficient", []) if r in REDUCIBLE_RESOURCES]
        changed = []
        for container, requests in sorted(details.get("requests", {}).items()):
            for resource in reducible:
                current = requests.get(resource)
                if not current:
                    continue
                new = reduce_request(resource, current, self.floors[resource])
                if new is None:
                    continue
                if not set_container_request(doc, container, resource, new):
                    raise ManifestObjectMissing(
                        f"Container '{container}' of Deployment '{owner}' "
                        "is not in the manifest template"
                    )
                changed.append(f"{container}.{resource}: {current} -> {new}")

        if not changed:
            raise RequestsNotReducible(
                f"Pod '{pod}' is short of {', '.join(details.get('insufficient', []))} "
                "but no memory/cpu request can be lowered above the floor"
            )
        logger.debug("Deployment %s/%s requests: %s", namespace, owner, "; ".join(changed))

        return {
            "apply_workload": [
                ApplyManifest(
                    render_documents([doc]),
                    wait_ready=(ObjectRef("Deployment", owner, namespace),),
                    timeout_seconds=self.ready_timeout,
                )
            ]
        }

    # ----------------------------
    # Plan assembly
    # ----------------------------

    def plan(self, findings: list[Finding]) -> RemediationPlan:
        phases: dict[str, list[RemediationAction]] = {p: [] for p in PHASES}
        errors: list[PlanningError] = []

        for finding in findings:
            if not finding.blocking:
                continue
            handler = self._handlers.get(finding.rule_id)
            if handler is None:
                logger.debug("No remediation for blocking rule '%s'", finding.rule_id)
                continue
            try:
                planned = handler(finding)
            except PlanningError as e:
                e.finding = finding
                logger.warning("Cannot plan %s: %s", finding.rule_id, e)
                errors.append(e)
                continue
            for phase, actions in planned.items():
                phases[phase].extend(actions)

        ordered: list[RemediationAction] = []
        for phase in PHASES:
            ordered.extend(phases[phase])

        # Identical actions (shared consumers, replicas of one Deployment) once
        return RemediationPlan(actions=tuple(dict.fromkeys(ordered)), errors=tuple(errors))
