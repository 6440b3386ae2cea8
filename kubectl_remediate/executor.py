import logging
import time
from dataclasses import dataclass
from typing import Any, Literal

from kubectl_remediate.actions import (
    ApplyManifest,
    DeleteObject,
    RemediationAction,
    ScaleDeployment,
)
from kubectl_remediate.controlplane import ControlPlane
from kubectl_remediate.errors import (
    ActionFailed,
    ClusterUnreachable,
    ControlPlaneRejected,
    RemediationError,
    RemediationTimeout,
)
from kubectl_remediate.manifest import parse_documents
from kubectl_remediate.model import ObjectRef

logger = logging.getLogger("kubectl_remediate.executor")

Status = Literal["succeeded", "failed", "timed_out", "not_attempted"]


@dataclass(frozen=True)
class ActionResult:
    action: RemediationAction
    status: Status
    error: RemediationError | None = None
    detail: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action.describe(),
            "status": self.status,
            "error": str(self.error) if self.error else None,
            "error_type": type(self.error).__name__ if self.error else None,
            "detail": self.detail,
        }


@dataclass(frozen=True)
class ExecutionReport:
    results: tuple[ActionResult, ...] = ()

    @property
    def succeeded(self) -> bool:
        return all(r.status == "succeeded" for r in self.results)

    @property
    def failure(self) -> ActionResult | None:
        for r in self.results:
            if r.status in ("failed", "timed_out"):
                return r
        return None

    @property
    def unreachable(self) -> bool:
        failure = self.failure
        return failure is not None and isinstance(failure.error, ClusterUnreachable)

    def remaining_actions(self) -> list[RemediationAction]:
        """Actions a caller should re-run: the failed one and everything after."""
        return [r.action for r in self.results if r.status != "succeeded"]

    def to_dict(self) -> dict[str, Any]:
        return {
            "succeeded": self.succeeded,
            "results": [r.to_dict() for r in self.results],
        }


class Executor:
    """
    Applies remediation actions one at a time, in order.

    The first failure or timeout halts the run; later actions are reported
    as not_attempted. Nothing is retried.
    """

    def __init__(self, control_plane: ControlPlane):
        self.control_plane = control_plane

    # ----------------------------
    # Single actions
    # ----------------------------

    def _delete(self, action: DeleteObject, budget: float) -> str:
        cp = self.control_plane
        existed = cp.delete(action.kind, action.name, action.namespace)
        if not existed:
            return "already absent"
        if not cp.wait_for_absent(action.kind, action.name, action.namespace, budget):
            raise RemediationTimeout(str(action.ref), "absent", budget)
        return "deleted"

    def _wait_ready(self, ref: ObjectRef, budget: float, deadline: float) -> None:
        remaining = deadline - time.monotonic()
        if remaining <= 0 or not self.control_plane.wait_for_ready(
            ref.name, ref.namespace, remaining
        ):
            raise RemediationTimeout(str(ref), "ready", budget)

    def _apply(self, action: ApplyManifest, budget: float) -> str:
        cp = self.control_plane
        cp.apply(parse_documents(action.content))

        deadline = time.monotonic() + budget
        for ref in action.wait_for:
            remaining = deadline - time.monotonic()
            if remaining <= 0 or not cp.wait_for_phase(
                ref.kind, ref.name, ref.namespace, action.wait_phase, remaining
            ):
                raise RemediationTimeout(str(ref), action.wait_phase, budget)
        for ref in action.wait_ready:
            self._wait_ready(ref, budget, deadline)

        waited = []
        if action.wait_for:
            waited.append(f"{len(action.wait_for)} object(s) {action.wait_phase}")
        if action.wait_ready:
            waited.append(f"{len(action.wait_ready)} deployment(s) ready")
        return ", ".join(["applied", *waited])

    def _scale(self, action: ScaleDeployment, budget: float) -> str:
        self.control_plane.scale(action.name, action.namespace, action.replicas)
        if action.wait_ready and action.replicas > 0:
            self._wait_ready(action.ref, budget, time.monotonic() + budget)
            return f"replicas={action.replicas}, ready"
        return f"replicas={action.replicas}"

    def _run(self, action: RemediationAction, budget: float) -> str:
        if isinstance(action, DeleteObject):
            return self._delete(action, budget)
        if isinstance(action, ApplyManifest):
            return self._apply(action, budget)
        if isinstance(action, ScaleDeployment):
            return self._scale(action, budget)
        raise TypeError(f"Unknown remediation action: {action!r}")

    # ----------------------------
    # Plan execution
    # ----------------------------

    def apply(
        self, actions: list[RemediationAction], deadline: float | None = None
    ) -> ExecutionReport:
        """
        deadline is an overall budget in seconds for the whole sequence.
        It clips each action's own timeout; once exhausted, the next action
        fails with RemediationTimeout.
        """
        actions = list(actions)
        ends_at = None if deadline is None else time.monotonic() + deadline
        results: list[ActionResult] = []

        for index, action in enumerate(actions):
            budget = getattr(action, "timeout_seconds", 0.0)
            remaining = None if ends_at is None else ends_at - time.monotonic()

            logger.info("[%d/%d] %s", index + 1, len(actions), action.describe())
            try:
                if remaining is not None:
                    if remaining <= 0:
                        raise RemediationTimeout(action.describe(), "started", deadline)
                    budget = min(budget, remaining)
                detail = self._run(action, budget)
            except RemediationTimeout as e:
                logger.error("Timed out: %s", e)
                results.append(ActionResult(action, "timed_out", e))
            except ControlPlaneRejected as e:
                error = ActionFailed(action, e)
                logger.error("%s", error)
                results.append(ActionResult(action, "failed", error))
            except ClusterUnreachable as e:
                logger.error("Control plane lost during %s: %s", action.describe(), e)
                results.append(ActionResult(action, "failed", e))
            else:
                logger.info("Done: %s (%s)", action.describe(), detail)
                results.append(ActionResult(action, "succeeded", detail=detail))
                continue

            skipped = actions[index + 1 :]
            if skipped:
                logger.warning("Halting, %d action(s) not attempted", len(skipped))
            results.extend(ActionResult(a, "not_attempted") for a in skipped)
            break

        return ExecutionReport(tuple(results))
