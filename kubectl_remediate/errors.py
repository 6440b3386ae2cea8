from typing import Any


class RemediationError(Exception):
    """
    Base class for every error the engine surfaces to a caller.
    """


class ConfigError(RemediationError):
    pass


class ClusterUnreachable(RemediationError):
    """
    The control plane could not be contacted at all. Fatal for the run.
    """

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.cause = cause


class InspectionFailed(RemediationError):
    """
    The control plane answered but rejected a read.
    """

    def __init__(self, kind: str, namespace: str, status: int | None, reason: str):
        scope = f" in namespace '{namespace}'" if namespace else ""
        super().__init__(f"Cannot list {kind}{scope}: {status} {reason}")
        self.kind = kind
        self.namespace = namespace
        self.status = status
        self.reason = reason


class ControlPlaneRejected(RemediationError):
    """
    A write or read was rejected by the API server (4xx/5xx).
    """

    def __init__(self, status: int | None, reason: str, obj: str = ""):
        super().__init__(f"{obj}: {status} {reason}" if obj else f"{status} {reason}")
        self.status = status
        self.reason = reason
        self.obj = obj


# ----------------------------
# Planning
# ----------------------------


class PlanningError(RemediationError):
    """
    A single finding could not be turned into actions.
    The rest of the plan is unaffected.
    """

    def __init__(self, message: str, finding: Any = None):
        super().__init__(message)
        self.finding = finding

    @property
    def rule_id(self) -> str | None:
        return getattr(self.finding, "rule_id", None)

    def to_dict(self) -> dict[str, Any]:
        affected = getattr(self.finding, "affected_objects", ())
        return {
            "error": type(self).__name__,
            "rule": self.rule_id,
            "objects": [str(ref) for ref in affected],
            "message": str(self),
        }


class NoViableStorageClass(PlanningError):
    pass


class ManifestObjectMissing(PlanningError):
    pass


class RequestsNotReducible(PlanningError):
    pass


# ----------------------------
# Execution
# ----------------------------


class RemediationTimeout(RemediationError):
    def __init__(self, obj: str, waited_for: str, timeout: float):
        super().__init__(f"{obj} did not become {waited_for} within {timeout:g}s")
        self.obj = obj
        self.waited_for = waited_for
        self.timeout = timeout


class ActionFailed(RemediationError):
    """
    Wraps a control-plane rejection of a single remediation action.
    """

    def __init__(self, action: Any, cause: BaseException):
        describe = getattr(action, "describe", None)
        label = describe() if callable(describe) else repr(action)
        super().__init__(f"{label} failed: {cause}")
        self.action = action
        self.cause = cause
