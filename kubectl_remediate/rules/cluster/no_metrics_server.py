from kubectl_remediate.model import Finding, ObjectRef
from kubectl_remediate.rules.base_rule import DiagnosticRule


class NoMetricsServerRule(DiagnosticRule):
    """
    metrics.k8s.io is not served; live node usage cannot be shown.
    Informational only, never blocks remediation.
    """

    name = "NoMetricsServer"
    category = "Cluster"
    severity = "info"
    priority = 90

    requires = {
        "snapshot": ["metrics_available"],
    }

    def matches(self, snapshot) -> bool:
        return not snapshot.metrics_available

    def explain(self, snapshot):
        return [
            Finding(
                rule_id=self.name,
                severity=self.severity,
                affected_objects=(ObjectRef("APIService", "v1beta1.metrics.k8s.io"),),
                message="Node resource metrics are unavailable (metrics-server not installed?)",
                suggested_checks=("kubectl top nodes", "kubectl get apiservices"),
            )
        ]
