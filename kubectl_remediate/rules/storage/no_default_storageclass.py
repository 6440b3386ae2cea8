from kubectl_remediate.model import Finding, ObjectRef
from kubectl_remediate.rules.base_rule import DiagnosticRule


class NoDefaultStorageClassRule(DiagnosticRule):
    """
    Detects clusters where no StorageClass is annotated as the default.

    Signals:
    - No StorageClass carries storageclass.kubernetes.io/is-default-class=true

    Interpretation:
    PVCs that omit storageClassName cannot be dynamically provisioned and
    stay Pending. Remediation can still pick a class from the preferred
    allowlist, so this is a warning rather than a blocker.

    Exclusions:
    - Does not judge whether the non-default classes are usable
    """

    name = "NoDefaultStorageClass"
    category = "Storage"
    severity = "warning"
    priority = 10

    requires = {
        "snapshot": ["storage_classes"],
    }

    def matches(self, snapshot) -> bool:
        return snapshot.default_storage_class is None

    def explain(self, snapshot):
        available = [sc.name for sc in snapshot.storage_classes]
        if available:
            message = (
                "No default StorageClass; PVCs without storageClassName "
                f"cannot bind (available: {', '.join(available)})"
            )
        else:
            message = "Cluster has no StorageClasses at all"

        return [
            Finding(
                rule_id=self.name,
                severity=self.severity,
                affected_objects=tuple(
                    ObjectRef("StorageClass", name) for name in available
                ),
                message=message,
                details={"available": available},
                suggested_checks=(
                    "kubectl get storageclass",
                    "kubectl annotate storageclass <name> "
                    "storageclass.kubernetes.io/is-default-class=true",
                ),
            )
        ]
