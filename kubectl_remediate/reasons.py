import re
from dataclasses import dataclass, field

# "0/3 nodes are available: 1 Insufficient memory, 2 Insufficient cpu."
_INSUFFICIENT = re.compile(r"Insufficient\s+([A-Za-z0-9./_-]+)")
_TOO_MANY_PODS = re.compile(r"Too many pods", re.IGNORECASE)
_UNBOUND_CLAIMS = re.compile(
    r"unbound (immediate )?PersistentVolumeClaims|persistentvolumeclaim .* not found",
    re.IGNORECASE,
)
_UNTOLERATED_TAINT = re.compile(r"untolerated taint|had taint", re.IGNORECASE)
_AFFINITY = re.compile(r"node affinity|node selector|didn't match", re.IGNORECASE)

# Requests the planner knows how to shrink
REDUCIBLE_RESOURCES = ("memory", "cpu")


@dataclass(frozen=True)
class SchedulingBlockers:
    """
    Structured reading of a scheduler 'Unschedulable' message.
    """

    insufficient: tuple[str, ...] = field(default_factory=tuple)
    unbound_claims: bool = False
    untolerated_taint: bool = False
    affinity_mismatch: bool = False

    @property
    def insufficient_resources(self) -> bool:
        return bool(self.insufficient)


def classify_unschedulable_reason(message: str | None) -> SchedulingBlockers:
    """
    Single place that pattern-matches human-readable scheduler messages.
    Scheduler wording drifts between Kubernetes releases; fix it here only.
    """
    if not message:
        return SchedulingBlockers()

    found: list[str] = []
    for match in _INSUFFICIENT.finditer(message):
        resource = match.group(1).rstrip(".,").lower()
        if resource not in found:
            found.append(resource)
    if _TOO_MANY_PODS.search(message) and "pods" not in found:
        found.append("pods")

    return SchedulingBlockers(
        insufficient=tuple(found),
        unbound_claims=bool(_UNBOUND_CLAIMS.search(message)),
        untolerated_taint=bool(_UNTOLERATED_TAINT.search(message)),
        affinity_mismatch=bool(_AFFINITY.search(message)),
    )
