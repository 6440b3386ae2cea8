from kubectl_remediate.model import Finding
from kubectl_remediate.quantity import format_memory, parse_memory
from kubectl_remediate.rules.base_rule import DiagnosticRule


class RequestExceedsNodeCapacityRule(DiagnosticRule):
    """
    Pending Pod whose total memory request is larger than the biggest
    node's allocatable memory. Halving requests may not be enough;
    larger nodes or autoscaling are needed.
    """

    name = "RequestExceedsNodeCapacity"
    category = "Scheduling"
    severity = "warning"
    priority = 35

    requires = {
        "snapshot": ["pods", "nodes"],
    }

    @staticmethod
    def _memory_request(pod) -> int:
        total = 0
        for c in pod.containers:
            if "memory" in c.requests:
                total += parse_memory(c.requests["memory"])
        return total

    def _oversized(self, snapshot):
        largest = max((n.allocatable_memory for n in snapshot.nodes), default=0)
        if largest <= 0:
            return largest, []
        return largest, [
            pod
            for pod in snapshot.pending_pods
            if self._memory_request(pod) > largest
        ]

    def matches(self, snapshot) -> bool:
        _, pods = self._oversized(snapshot)
        return bool(pods)

    def explain(self, snapshot):
        largest, pods = self._oversized(snapshot)
        return [
            Finding(
                rule_id=self.name,
                severity=self.severity,
                affected_objects=(pod.ref,),
                message=(
                    f"Pod '{pod.name}' requests "
                    f"{format_memory(self._memory_request(pod))} memory; the largest "
                    f"node has {format_memory(largest)} allocatable"
                ),
                details={
                    "pod": pod.name,
                    "requested_bytes": self._memory_request(pod),
                    "largest_allocatable_bytes": largest,
                },
                suggested_checks=(
                    "kubectl get nodes -o wide",
                    "Consider a node pool with larger instance types",
                    "Consider enabling the cluster autoscaler",
                ),
            )
            for pod in pods
        ]
