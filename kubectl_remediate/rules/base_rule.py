from kubectl_remediate.model import ClusterSnapshot, Finding, Severity


class DiagnosticRule:
    """
    Base class for all diagnostic rules.
    """

    # ---- Metadata (mandatory) ----
    name: str = "BaseRule"
    category: str = "Generic"
    severity: Severity = "info"
    priority: int = 100  # lower runs first

    # ---- Contract requirements ----
    requires = {
        "snapshot": [],  # snapshot sections the rule reads, e.g. ["pvcs"]
    }

    def matches(self, snapshot: ClusterSnapshot) -> bool:
        raise NotImplementedError

    def explain(self, snapshot: ClusterSnapshot) -> list[Finding]:
        """
        Must return one Finding per affected subject, each with
        rule_id == self.name and severity == self.severity.
        """
        raise NotImplementedError
