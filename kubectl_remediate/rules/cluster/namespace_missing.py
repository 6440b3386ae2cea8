from kubectl_remediate.model import Finding, ObjectRef
from kubectl_remediate.rules.base_rule import DiagnosticRule


class NamespaceMissingRule(DiagnosticRule):
    name = "NamespaceMissing"
    category = "Cluster"
    severity = "warning"
    priority = 5

    requires = {
        "snapshot": ["namespace_exists"],
    }

    def matches(self, snapshot) -> bool:
        return not snapshot.namespace_exists

    def explain(self, snapshot):
        ns = snapshot.namespace
        return [
            Finding(
                rule_id=self.name,
                severity=self.severity,
                affected_objects=(ObjectRef("Namespace", ns),),
                message=f"Namespace '{ns}' does not exist; nothing to inspect in it",
                suggested_checks=(f"kubectl create namespace {ns}",),
            )
        ]
