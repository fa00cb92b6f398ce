from deckhand.plan.failure import FailurePlanBuilder, tracking_failed
from deckhand.plan.plan import OperationStatus, OperationType as Op, Phase, PhaseType, Plan
from deckhand.release.release import ReleaseStatus
from deckhand.resource.resource import new_crd, new_general_resource, new_hook

from fakes import configmap, crd, job_hook, release


def _failed_tracking_plan(targets, failed_ids=None):
    phase = Phase(PhaseType.RUN_POST_HOOKS)
    op = phase.add(Op.TRACK_HOOKS_READINESS, targets)
    op.status = OperationStatus.FAILED
    op.failed_targets = list(failed_ids or [])
    plan = Plan()
    plan.add_phase(phase)
    return plan


def _pending():
    return release(revision=2, status=ReleaseStatus.PENDING_UPGRADE)


def test_fail_release_phase_always_present():
    plan = FailurePlanBuilder(Plan(), [], _pending()).build()
    assert [p.type for p in plan.phases] == [PhaseType.FAIL_RELEASE]
    op = plan.phases[0].operations[0]
    assert op.type == Op.UPDATE_RELEASE
    assert op.releases[0].status == ReleaseStatus.FAILED
    assert op.releases[0].revision == 2


def test_cleans_up_failed_hook_with_after_failed_policy():
    hook = new_hook(job_hook("smoke", delete_policy="hook-failed"), "apps")
    deploy_plan = _failed_tracking_plan([hook], [hook.id])

    plan = FailurePlanBuilder(deploy_plan, [hook], _pending()).build()

    cleanup = plan.phase(PhaseType.CLEANUP_ON_FAILURE)
    assert [(op.type, op.targets[0].id) for op in cleanup.operations] == [
        (Op.DELETE, hook.id),
        (Op.TRACK_ABSENCE, hook.id),
    ]


def test_skips_resource_whose_tracking_did_not_fail():
    ok = new_hook(job_hook("ok", delete_policy="hook-failed"), "apps")
    bad = new_hook(job_hook("bad", delete_policy="hook-failed"), "apps")
    deploy_plan = _failed_tracking_plan([ok, bad], [bad.id])

    plan = FailurePlanBuilder(deploy_plan, [ok, bad], _pending()).build()

    targets = [op.targets[0].ref.name for op in plan.phase(PhaseType.CLEANUP_ON_FAILURE).operations]
    assert targets == ["bad", "bad"]


def test_op_without_per_target_detail_counts_for_all_targets():
    res = new_general_resource(configmap("cfg", annotations={"deckhand.io/delete-policy": "failed"}), "apps")
    deploy_plan = _failed_tracking_plan([res])
    assert tracking_failed(deploy_plan, res)


def test_never_touched_resource_is_not_cleaned():
    res = new_general_resource(configmap("cfg", annotations={"deckhand.io/delete-policy": "failed"}), "apps")
    plan = FailurePlanBuilder(Plan(), [res], _pending()).build()
    assert plan.phase(PhaseType.CLEANUP_ON_FAILURE) is None


def test_crds_are_never_cleaned():
    widget_crd = new_crd(crd())
    deploy_plan = _failed_tracking_plan([widget_crd], [widget_crd.id])
    plan = FailurePlanBuilder(deploy_plan, [widget_crd], _pending()).build()
    assert plan.phase(PhaseType.CLEANUP_ON_FAILURE) is None


def test_duplicates_collapse():
    hook = new_hook(job_hook("smoke", delete_policy="hook-failed"), "apps")
    deploy_plan = _failed_tracking_plan([hook], [hook.id])
    plan = FailurePlanBuilder(deploy_plan, [hook, hook], _pending()).build()
    assert len(plan.phase(PhaseType.CLEANUP_ON_FAILURE).operations) == 2
