from dataclasses import dataclass, field
from typing import Any

from kubectl_remediate.errors import PlanningError
from kubectl_remediate.manifest import parse_documents
from kubectl_remediate.model import ObjectRef


@dataclass(frozen=True)
class DeleteObject:
    """
    Delete an object and wait until it is gone. Already absent is success.
    """

    kind: str
    name: str
    namespace: str = ""
    timeout_seconds: float = 120.0

    action = "delete"

    @property
    def ref(self) -> ObjectRef:
        return ObjectRef(self.kind, self.name, self.namespace)

    def describe(self) -> str:
        return f"delete {self.ref}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action,
            "object": str(self.ref),
            "timeout_seconds": self.timeout_seconds,
        }


@dataclass(frozen=True)
class ApplyManifest:
    """
    Declarative upsert of one or more YAML documents.

    wait_for lists objects that must reach wait_phase, and wait_ready
    Deployments that must finish rolling out, before the action counts
    as done. Both share timeout_seconds.
    """

    content: str
    wait_for: tuple[ObjectRef, ...] = ()
    wait_phase: str = "Bound"
    wait_ready: tuple[ObjectRef, ...] = ()
    timeout_seconds: float = 300.0

    action = "apply"

    def describe(self) -> str:
        objects = ", ".join(self.objects()) or "<empty manifest>"
        return f"apply {objects}"

    def objects(self) -> list[str]:
        refs = []
        for doc in parse_documents(self.content):
            meta = doc.get("metadata", {})
            refs.append(
                str(
                    ObjectRef(
                        doc.get("kind", "?"),
                        meta.get("name", "?"),
                        meta.get("namespace", ""),
                    )
                )
            )
        return refs

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action,
            "objects": self.objects(),
            "wait_for": [str(ref) for ref in self.wait_for],
            "wait_phase": self.wait_phase if self.wait_for else None,
            "wait_ready": [str(ref) for ref in self.wait_ready],
            "timeout_seconds": self.timeout_seconds,
            "content": self.content,
        }


@dataclass(frozen=True)
class ScaleDeployment:
    """
    Set the replica count. With wait_ready the action also waits, within
    timeout_seconds, for the Deployment to report its replicas available.
    """

    name: str
    namespace: str
    replicas: int
    wait_ready: bool = False
    timeout_seconds: float = 0.0

    action = "scale"

    @property
    def ref(self) -> ObjectRef:
        return ObjectRef("Deployment", self.name, self.namespace)

    def describe(self) -> str:
        return f"scale {self.ref} to {self.replicas}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action,
            "object": str(self.ref),
            "replicas": self.replicas,
            "wait_ready": self.wait_ready,
            "timeout_seconds": self.timeout_seconds,
        }


RemediationAction = DeleteObject | ApplyManifest | ScaleDeployment


@dataclass(frozen=True)
class RemediationPlan:
    actions: tuple[RemediationAction, ...] = ()
    errors: tuple[PlanningError, ...] = field(default=(), compare=False)

    def __iter__(self):
        return iter(self.actions)

    def __len__(self) -> int:
        return len(self.actions)

    @property
    def complete(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "actions": [a.to_dict() for a in self.actions],
            "errors": [e.to_dict() for e in self.errors],
        }
