from kubectl_remediate.model import Finding
from kubectl_remediate.reasons import classify_unschedulable_reason
from kubectl_remediate.rules.base_rule import DiagnosticRule


class PendingPodInsufficientResourcesRule(DiagnosticRule):
    """
    Detects Pending Pods the scheduler could not place for lack of
    node resources.

    Signals:
    - Pod.status.phase == "Pending"
    - PodScheduled=False/Unschedulable with an "Insufficient <resource>"
      or "Too many pods" message

    Interpretation:
    The Pod's requests exceed what any node has left. Remediation
    lowers the owning Deployment's requests instead of deleting it.

    Exclusions:
    - Taint, affinity and volume-binding scheduling failures
    """

    name = "PendingPodInsufficientResources"
    category = "Scheduling"
    severity = "blocking"
    priority = 30

    requires = {
        "snapshot": ["pods"],
    }

    def _blocked(self, snapshot):
        for pod in snapshot.pending_pods:
            blockers = classify_unschedulable_reason(pod.unschedulable_reason)
            if blockers.insufficient_resources:
                yield pod, blockers

    def matches(self, snapshot) -> bool:
        return any(True for _ in self._blocked(snapshot))

    def explain(self, snapshot):
        findings = []
        for pod, blockers in self._blocked(snapshot):
            resources = list(blockers.insufficient)
            findings.append(
                Finding(
                    rule_id=self.name,
                    severity=self.severity,
                    affected_objects=(pod.ref,),
                    message=(
                        f"Pod '{pod.name}' in namespace '{pod.namespace}' is Pending: "
                        f"insufficient {', '.join(resources)}"
                    ),
                    details={
                        "pod": pod.name,
                        "namespace": pod.namespace,
                        "insufficient": resources,
                        "requests": pod.requests(),
                        "owner": pod.owner,
                        "reason": pod.unschedulable_reason,
                    },
                    suggested_checks=(
                        f"kubectl describe pod {pod.name} -n {pod.namespace}",
                        "kubectl describe nodes",
                    ),
                )
            )
        return findings
