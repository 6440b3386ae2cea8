from kubectl_remediate.actions import ApplyManifest, DeleteObject, ScaleDeployment
from kubectl_remediate.errors import (
    ActionFailed,
    ClusterUnreachable,
    ControlPlaneRejected,
    RemediationTimeout,
)
from kubectl_remediate.executor import Executor
from kubectl_remediate.manifest import pvc_document, render_documents
from kubectl_remediate.model import ObjectRef

PVC_REF = ObjectRef("PersistentVolumeClaim", "data", "apps")


def pvc_apply(wait=True):
    content = render_documents([pvc_document("data", "apps", "gp2", ["ReadWriteOnce"], "10Gi")])
    return ApplyManifest(content, wait_for=(PVC_REF,) if wait else (), timeout_seconds=30)


def test_actions_run_in_order(fake_control_plane):
    actions = [
        ScaleDeployment("api", "apps", 0),
        DeleteObject("PersistentVolumeClaim", "data", "apps"),
        pvc_apply(),
        ScaleDeployment("api", "apps", 2),
    ]
    report = Executor(fake_control_plane).apply(actions)

    assert report.succeeded
    assert [c[0] for c in fake_control_plane.calls] == [
        "scale",
        "delete",
        "wait_absent",
        "apply",
        "wait_phase",
        "scale",
    ]
    assert report.remaining_actions() == []


def test_delete_of_absent_object_succeeds(fake_control_plane):
    fake_control_plane.absent.add("data")
    report = Executor(fake_control_plane).apply(
        [DeleteObject("PersistentVolumeClaim", "data", "apps")]
    )

    assert report.succeeded
    assert report.results[0].detail == "already absent"
    # nothing to wait for
    assert [c[0] for c in fake_control_plane.calls] == ["delete"]


def test_delete_timeout(fake_control_plane):
    fake_control_plane.disappears = False
    report = Executor(fake_control_plane).apply(
        [DeleteObject("PersistentVolumeClaim", "data", "apps", timeout_seconds=5), pvc_apply()]
    )

    assert [r.status for r in report.results] == ["timed_out", "not_attempted"]
    assert isinstance(report.failure.error, RemediationTimeout)
    assert report.failure.error.waited_for == "absent"


def test_apply_waits_for_bound(fake_control_plane):
    fake_control_plane.reaches_phase = False
    report = Executor(fake_control_plane).apply([pvc_apply()])

    assert report.results[0].status == "timed_out"
    assert report.results[0].error.obj == str(PVC_REF)


def test_apply_without_wait(fake_control_plane):
    report = Executor(fake_control_plane).apply([pvc_apply(wait=False)])
    assert report.succeeded
    assert "wait_phase" not in [c[0] for c in fake_control_plane.calls]


def test_rejection_wrapped_in_action_failed(fake_control_plane):
    fake_control_plane.fail[("apply", "data")] = ControlPlaneRejected(
        422, "Unprocessable Entity", "PersistentVolumeClaim/apps/data"
    )
    action = pvc_apply()
    report = Executor(fake_control_plane).apply([action])

    error = report.failure.error
    assert isinstance(error, ActionFailed)
    assert error.action == action
    assert error.cause.status == 422
    assert not report.unreachable


def test_lost_connection_is_reported_as_unreachable(fake_control_plane):
    fake_control_plane.fail[("scale", "api")] = ClusterUnreachable("connection reset")
    report = Executor(fake_control_plane).apply(
        [ScaleDeployment("api", "apps", 0), ScaleDeployment("web", "apps", 0)]
    )

    assert [r.status for r in report.results] == ["failed", "not_attempted"]
    assert report.unreachable


def test_exhausted_deadline_fails_next_action(fake_control_plane):
    report = Executor(fake_control_plane).apply(
        [ScaleDeployment("api", "apps", 0), ScaleDeployment("web", "apps", 0)],
        deadline=0,
    )

    assert report.results[0].status == "timed_out"
    assert report.results[1].status == "not_attempted"
    assert fake_control_plane.calls == []


def test_deadline_does_not_block_untimed_actions(fake_control_plane):
    report = Executor(fake_control_plane).apply(
        [ScaleDeployment("api", "apps", 0)], deadline=60
    )
    assert report.succeeded


def test_empty_plan(fake_control_plane):
    report = Executor(fake_control_plane).apply([])
    assert report.succeeded
    assert report.failure is None
    assert report.to_dict() == {"succeeded": True, "results": []}


def test_deadline_clips_action_budget(fake_control_plane):
    report = Executor(fake_control_plane).apply(
        [DeleteObject("PersistentVolumeClaim", "data", "apps", timeout_seconds=120)],
        deadline=5,
    )

    assert report.succeeded
    (budget,) = fake_control_plane.timeouts("wait_absent")
    assert 0 < budget <= 5


def test_action_timeout_used_when_deadline_is_larger(fake_control_plane):
    Executor(fake_control_plane).apply([pvc_apply()], deadline=3600)
    (budget,) = fake_control_plane.timeouts("wait_phase")
    assert 0 < budget <= 30


# ----------------------------
# Workload readiness
# ----------------------------


def workload_apply():
    doc = {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {"name": "api", "namespace": "apps"},
    }
    return ApplyManifest(
        render_documents([doc]),
        wait_ready=(ObjectRef("Deployment", "api", "apps"),),
        timeout_seconds=60,
    )


def test_apply_waits_for_deployment_ready(fake_control_plane):
    report = Executor(fake_control_plane).apply([workload_apply()])

    assert report.succeeded
    assert report.results[0].detail == "applied, 1 deployment(s) ready"
    assert [c[0] for c in fake_control_plane.calls] == ["apply", "wait_ready"]
    (budget,) = fake_control_plane.timeouts("wait_ready")
    assert 0 < budget <= 60


def test_deployment_never_ready_times_out(fake_control_plane):
    fake_control_plane.becomes_ready = False
    report = Executor(fake_control_plane).apply(
        [workload_apply(), ScaleDeployment("web", "apps", 1)]
    )

    assert [r.status for r in report.results] == ["timed_out", "not_attempted"]
    error = report.failure.error
    assert isinstance(error, RemediationTimeout)
    assert error.obj == "Deployment/apps/api"
    assert error.waited_for == "ready"


def test_scale_up_waits_for_ready(fake_control_plane):
    fake_control_plane.becomes_ready = False
    report = Executor(fake_control_plane).apply(
        [ScaleDeployment("api", "apps", 2, wait_ready=True, timeout_seconds=30)]
    )

    assert report.results[0].status == "timed_out"
    assert [c[0] for c in fake_control_plane.calls] == ["scale", "wait_ready"]


def test_scale_to_zero_does_not_wait(fake_control_plane):
    report = Executor(fake_control_plane).apply(
        [ScaleDeployment("api", "apps", 0, wait_ready=True, timeout_seconds=30)]
    )

    assert report.succeeded
    assert [c[0] for c in fake_control_plane.calls] == ["scale"]
