import pytest

from deckhand.errors import MultiError, PlanExecutionError, ReleaseFinalizationError, StorageError
from deckhand.observers.events import OperationCompleted, OperationFailed, PhaseStarted, ReleaseRecorded
from deckhand.plan.executor import ExecutorOptions, PlanExecutor
from deckhand.plan.plan import OperationStatus, OperationType as Op, Phase, PhaseType, Plan
from deckhand.release.history import History
from deckhand.release.release import ReleaseStatus
from deckhand.release.storage import MemoryStorage
from deckhand.resource.resource import ExternalDependency, new_general_resource

from fakes import configmap, release


class BrokenUpdates(MemoryStorage):
    def update(self, rel):
        raise StorageError("etcd unavailable")


def _res(name):
    return new_general_resource(configmap(name), "apps")


def _executor(kube, tracker, ctx, storage=None):
    history = History("web", "apps", storage or MemoryStorage())
    return PlanExecutor(kube, tracker, history, ExecutorOptions(network_parallelism=4), ctx), history


def _plan(*phases):
    plan = Plan()
    for p in phases:
        plan.add_phase(p)
    return plan


def test_creates_and_reports(kube, tracker, ctx, capture):
    a, b = _res("a"), _res("b")
    phase = Phase(PhaseType.DEPLOY_RESOURCES)
    phase.add(Op.CREATE, [a, b])
    phase.add(Op.TRACK_RESOURCES_READINESS, [a, b])
    executor, _ = _executor(kube, tracker, ctx)

    report = executor.execute(_plan(phase))

    assert sorted(t.ref.name for t, _ in report.created) == ["a", "b"]
    assert tracker.readiness_calls == [[a.id, b.id]]
    assert all(op.status == OperationStatus.COMPLETED for op in phase.operations)
    assert len(capture.of(PhaseStarted)) == 1
    assert len(capture.of(OperationCompleted)) == 2


def test_stops_at_first_failed_operation(kube, tracker, ctx, capture):
    a, b, c = _res("a"), _res("b"), _res("c")
    kube.fail_create[b.id] = "quota exceeded"
    phase = Phase(PhaseType.DEPLOY_RESOURCES)
    first = phase.add(Op.CREATE, [a])
    second = phase.add(Op.CREATE, [b])
    third = phase.add(Op.CREATE, [c])
    later = Phase(PhaseType.CLEANUP)
    later.add(Op.DELETE, [a])
    executor, _ = _executor(kube, tracker, ctx)

    try:
        executor.execute(_plan(phase, later))
        assert False, "expected PlanExecutionError"
    except PlanExecutionError as e:
        assert e.phase == PhaseType.DEPLOY_RESOURCES.value
        assert "quota exceeded" in str(e)
        assert [t.ref.name for t, _ in e.report.created] == ["a"]

    assert first.status == OperationStatus.COMPLETED
    assert second.status == OperationStatus.FAILED
    assert third.status == OperationStatus.PENDING
    assert kube.calls_of("create") == [a.id, b.id]
    assert kube.calls_of("delete") == []
    failed = capture.of(OperationFailed)
    assert len(failed) == 1 and failed[0].targets == [b.id]


def test_all_targets_run_and_failures_aggregate(kube, tracker, ctx):
    x, y, z = _res("x"), _res("y"), _res("z")
    kube.fail_create[x.id] = "boom-x"
    kube.fail_create[y.id] = "boom-y"
    phase = Phase(PhaseType.DEPLOY_RESOURCES)
    phase.add(Op.CREATE, [x, y, z])
    executor, _ = _executor(kube, tracker, ctx)

    with pytest.raises(PlanExecutionError) as ei:
        executor.execute(_plan(phase))

    cause = ei.value.__cause__
    assert isinstance(cause, MultiError)
    assert len(cause.errors) == 2
    assert "boom-x" in str(cause) and "boom-y" in str(cause)
    assert z.id in kube.objects


def test_create_falls_back_to_apply_when_object_exists(kube, tracker, ctx):
    a = _res("a")
    kube.seed(a)
    phase = Phase(PhaseType.DEPLOY_RESOURCES)
    phase.add(Op.CREATE, [a])
    executor, _ = _executor(kube, tracker, ctx)

    report = executor.execute(_plan(phase))

    assert report.created == []
    assert [t.ref.name for t, _ in report.updated] == ["a"]
    assert kube.calls == [("create", a.id), ("apply", a.id)]


def test_recreate_deletes_waits_and_creates(kube, tracker, ctx):
    a = _res("a")
    old_uid = kube.seed(a)["metadata"]["uid"]
    phase = Phase(PhaseType.DEPLOY_RESOURCES)
    phase.add(Op.RECREATE, [a])
    executor, _ = _executor(kube, tracker, ctx)

    report = executor.execute(_plan(phase))

    assert kube.calls == [("delete", a.id), ("create", a.id)]
    assert tracker.absence_calls == [[a.id]]
    assert kube.objects[a.id]["metadata"]["uid"] != old_uid
    assert [t.ref.name for t, _ in report.recreated] == ["a"]


def test_delete_and_absence(kube, tracker, ctx):
    a = _res("a")
    kube.seed(a)
    phase = Phase(PhaseType.CLEANUP)
    phase.add(Op.DELETE, [a])
    phase.add(Op.TRACK_ABSENCE, [a])
    executor, _ = _executor(kube, tracker, ctx)

    report = executor.execute(_plan(phase))

    assert report.deleted == [a.ref]
    assert a.id not in kube.objects


def test_tracking_failure_records_failed_targets(kube, tracker, ctx):
    a, b = _res("a"), _res("b")
    tracker.fail_ready[b.id] = "CrashLoopBackOff"
    phase = Phase(PhaseType.DEPLOY_RESOURCES)
    track = phase.add(Op.TRACK_RESOURCES_READINESS, [a, b])
    executor, _ = _executor(kube, tracker, ctx)

    with pytest.raises(PlanExecutionError):
        executor.execute(_plan(phase))

    assert track.status == OperationStatus.FAILED
    assert track.failed_targets == [b.id]
    assert "CrashLoopBackOff" in track.error


def test_external_dependencies_resolved_then_tracked(kube, tracker, ctx):
    dep = ExternalDependency(id="db", resource_type="deployment", name="postgres", namespace="databases")
    phase = Phase(PhaseType.DEPLOY_RESOURCES)
    phase.add(Op.TRACK_EXTERNAL_DEPENDENCIES_READINESS, [dep])
    executor, _ = _executor(kube, tracker, ctx)

    executor.execute(_plan(phase))

    assert tracker.readiness_calls == [["apps/v1/Deployment/databases/postgres"]]


def test_release_operations_write_history(kube, tracker, ctx, capture):
    pending = release(revision=1, status=ReleaseStatus.PENDING_INSTALL)
    create = Phase(PhaseType.CREATE_PENDING_RELEASE)
    create.add(Op.CREATE_RELEASE, releases=[pending])
    succeed = Phase(PhaseType.SUCCEED_RELEASE)
    succeed.add(Op.UPDATE_RELEASE, releases=[pending.with_status(ReleaseStatus.DEPLOYED)])
    storage = MemoryStorage()
    executor, history = _executor(kube, tracker, ctx, storage)

    executor.execute(_plan(create, succeed))

    assert history.release(1).status == ReleaseStatus.DEPLOYED
    assert [r.status for r in storage.query({"name": "web"})] == [ReleaseStatus.DEPLOYED]
    assert [e.status for e in capture.of(ReleaseRecorded)] == ["pending-install", "deployed"]


def test_terminal_write_failure_is_finalization_error(kube, tracker, ctx):
    pending = release(revision=1, status=ReleaseStatus.PENDING_INSTALL)
    create = Phase(PhaseType.CREATE_PENDING_RELEASE)
    create.add(Op.CREATE_RELEASE, releases=[pending])
    succeed = Phase(PhaseType.SUCCEED_RELEASE)
    succeed.add(Op.UPDATE_RELEASE, releases=[pending.with_status(ReleaseStatus.DEPLOYED)])
    executor, _ = _executor(kube, tracker, ctx, BrokenUpdates())

    with pytest.raises(ReleaseFinalizationError) as ei:
        executor.execute(_plan(create, succeed))

    err = ei.value
    assert err.status == "deployed"
    assert err.revision == 1
    assert err.report is not None
    assert "manual attention" in str(err)
    assert isinstance(err.__cause__, StorageError)
