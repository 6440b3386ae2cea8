from kubectl_remediate.model import Finding
from kubectl_remediate.relations import claim_consumers
from kubectl_remediate.rules.base_rule import DiagnosticRule


class UnboundPVCRule(DiagnosticRule):
    """
    Detects PersistentVolumeClaims stuck in the Pending phase.

    Signals:
    - PVC.status.phase == "Pending"

    Interpretation:
    The claim was never bound to a volume, usually because it names a
    StorageClass that does not exist or whose provisioner is missing.
    Every Pod mounting the claim stays Pending until it binds.

    Scope:
    - One finding per Pending PVC
    - Blocking: the planner recreates the claim with a viable class

    Exclusions:
    - Bound and Lost claims
    """

    name = "UnboundPVC"
    category = "Storage"
    severity = "blocking"
    priority = 20

    requires = {
        "snapshot": ["pvcs", "pods", "deployments"],
    }

    def matches(self, snapshot) -> bool:
        return bool(snapshot.pending_pvcs)

    def explain(self, snapshot):
        findings = []
        for pvc in snapshot.pending_pvcs:
            sc_name = pvc.storage_class_name
            if sc_name and snapshot.storage_class(sc_name) is None:
                cause = f"references missing StorageClass '{sc_name}'"
            elif sc_name:
                cause = f"uses StorageClass '{sc_name}'"
            else:
                cause = "has no storageClassName"

            findings.append(
                Finding(
                    rule_id=self.name,
                    severity=self.severity,
                    affected_objects=(pvc.ref,),
                    message=(
                        f"PVC '{pvc.name}' in namespace '{pvc.namespace}' "
                        f"is Pending and {cause}"
                    ),
                    details={
                        "pvc": pvc.name,
                        "namespace": pvc.namespace,
                        "storage_class": sc_name,
                        "storage_class_exists": bool(
                            sc_name and snapshot.storage_class(sc_name)
                        ),
                        "access_modes": list(pvc.access_modes),
                        "storage": pvc.storage_request,
                        "consumers": claim_consumers(snapshot, pvc.name),
                    },
                    suggested_checks=(
                        f"kubectl describe pvc {pvc.name} -n {pvc.namespace}",
                        "kubectl get storageclass",
                    ),
                )
            )
        return findings
