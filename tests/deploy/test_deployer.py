import pytest

from deckhand.config.models import DeckhandConfig, LockConfig
from deckhand.deploy.deployer import ChartInfo, Deployer
from deckhand.errors import (
    DeployError,
    ImmutableConflictError,
    ReleaseFinalizationError,
    ReleaseNameValidationError,
    StorageError,
)
from deckhand.lock.locker import InMemoryLocker
from deckhand.observers.events import (
    DeploySummary,
    FailurePlanStarted,
    LockAcquired,
    LockReleased,
    PlanComputed,
    PlanFailed,
)
from deckhand.plan.plan import PhaseType
from deckhand.release.release import DeployType, ReleaseStatus
from deckhand.release.storage import MemoryStorage
from deckhand.resource.loader import ReleaseManifests
from deckhand.resource.resource import new_general_resource, new_hook, new_release_namespace

from fakes import deployment, job_hook

S = ReleaseStatus


@pytest.fixture
def locker():
    return InMemoryLocker()


@pytest.fixture
def deployer(kube, tracker, storage, locker, ctx):
    cfg = DeckhandConfig(history_limit=10, lock=LockConfig(retry_delay=0))
    return Deployer(kube, tracker, storage, locker, config=cfg, ctx=ctx)


def _statuses(storage):
    return sorted((r.revision, r.status) for r in storage.query({"name": "web"}))


def _image(kube, res):
    return kube.objects[res.id]["spec"]["template"]["spec"]["containers"][0]["image"]


def test_install_then_unchanged_upgrade(deployer, kube, storage, locker, capture):
    manifests = ReleaseManifests(general=[deployment("web")], hooks=[job_hook("migrate")])

    first = deployer.deploy("web", "apps", manifests, values={"replicas": 1}, chart=ChartInfo("web", "1.0.0", "2.3"))

    web = new_general_resource(deployment("web"), "apps")
    migrate = new_hook(job_hook("migrate"), "apps")
    assert first.release.revision == 1
    assert first.release.status == S.DEPLOYED
    assert first.release.chart_version == "1.0.0"
    assert web.id in kube.objects and migrate.id in kube.objects
    assert new_release_namespace("apps").id in kube.objects
    assert [t.ref.name for t, _ in first.report.created] == ["apps", "web", "migrate"]

    kube.calls.clear()
    second = deployer.deploy("web", "apps", manifests, values={"replicas": 1})

    assert second.release.revision == 2
    assert second.release.deploy_type == DeployType.UPGRADE
    assert [p.type for p in second.plan.phases] == [PhaseType.CREATE_PENDING_RELEASE, PhaseType.SUCCEED_RELEASE]
    assert kube.calls == []
    assert _statuses(storage) == [(1, S.SUPERSEDED), (2, S.DEPLOYED)]
    assert not locker.is_locked("release/web")
    assert len(capture.of(LockAcquired)) == 2
    assert all(ev.ok for ev in capture.of(LockReleased))
    assert [ev.status for ev in capture.of(DeploySummary)] == ["deployed", "deployed"]


def test_failed_hook_fails_release_and_cleans_up(deployer, kube, tracker, storage, locker, capture):
    smoke = new_hook(job_hook("smoke", delete_policy="hook-failed"), "apps")
    tracker.fail_ready[smoke.id] = "BackoffLimitExceeded"
    manifests = ReleaseManifests(general=[deployment("web")], hooks=[job_hook("smoke", delete_policy="hook-failed")])

    try:
        deployer.deploy("web", "apps", manifests)
        assert False, "expected DeployError"
    except DeployError as e:
        assert e.phase == PhaseType.RUN_POST_HOOKS.value
        assert "BackoffLimitExceeded" in str(e)
        assert e.plan is not None
        assert e.report.status == "failed"

    [stored] = storage.query({"name": "web"})
    assert stored.status == S.FAILED
    assert stored.description.startswith("Initial failed: ")
    assert smoke.id not in kube.objects
    assert new_general_resource(deployment("web"), "apps").id in kube.objects
    assert not locker.is_locked("release/web")

    assert len(capture.of(FailurePlanStarted)) == 1
    [summary] = capture.of(DeploySummary)
    assert summary.status == "failed"
    assert "BackoffLimitExceeded" in summary.error


def test_failure_before_release_recorded(deployer, kube, storage, locker):
    kube.fail_create[new_release_namespace("apps").id] = "forbidden"

    with pytest.raises(DeployError) as ei:
        deployer.deploy("web", "apps", ReleaseManifests(general=[deployment("web")]))

    assert ei.value.phase == PhaseType.CREATE_RELEASE_NAMESPACE.value
    assert storage.query({"name": "web"}) == []
    assert not locker.is_locked("release/web")


class BrokenUpdates(MemoryStorage):
    def update(self, rel):
        raise StorageError("etcd unavailable")


def test_unrecordable_outcome_skips_failure_plan(kube, tracker, locker, ctx, capture):
    cfg = DeckhandConfig(lock=LockConfig(retry_delay=0))
    deployer = Deployer(kube, tracker, BrokenUpdates(), locker, config=cfg, ctx=ctx)

    with pytest.raises(DeployError) as ei:
        deployer.deploy("web", "apps", ReleaseManifests(general=[deployment("web")]))

    assert isinstance(ei.value.__cause__, ReleaseFinalizationError)
    assert capture.of(FailurePlanStarted) == []
    assert not locker.is_locked("release/web")


class SupersedeRejected(MemoryStorage):
    def update(self, rel):
        if rel.status == ReleaseStatus.SUPERSEDED:
            raise StorageError("etcd unavailable")
        super().update(rel)


def test_failed_supersede_leaves_deployed_revision_alone(kube, tracker, locker, ctx, capture):
    storage = SupersedeRejected()
    cfg = DeckhandConfig(lock=LockConfig(retry_delay=0))
    deployer = Deployer(kube, tracker, storage, locker, config=cfg, ctx=ctx)
    deployer.deploy("web", "apps", ReleaseManifests(general=[deployment("web")]))

    with pytest.raises(DeployError) as ei:
        deployer.deploy("web", "apps", ReleaseManifests(general=[deployment("web", image="nginx:1.26")]))

    assert isinstance(ei.value.__cause__, ReleaseFinalizationError)
    assert ei.value.__cause__.status == "superseded"
    assert _statuses(storage) == [(1, S.DEPLOYED), (2, S.DEPLOYED)]
    assert capture.of(FailurePlanStarted) == []
    assert not locker.is_locked("release/web")


def test_immutable_conflict_aborts_planning(deployer, kube, storage, locker, capture):
    deployer.deploy("web", "apps", ReleaseManifests(general=[deployment("web")]))
    kube.immutable.add(new_general_resource(deployment("web"), "apps").id)
    kube.calls.clear()

    with pytest.raises(ImmutableConflictError):
        deployer.deploy("web", "apps", ReleaseManifests(general=[deployment("web", image="nginx:1.26")]))

    assert kube.calls == []
    assert _statuses(storage) == [(1, S.DEPLOYED)]
    assert len(capture.of(PlanFailed)) == 1
    assert not locker.is_locked("release/web")


def test_orphans_are_removed_on_upgrade(deployer, kube):
    deployer.deploy("web", "apps", ReleaseManifests(general=[deployment("web"), deployment("worker")]))
    worker = new_general_resource(deployment("worker"), "apps")
    assert worker.id in kube.objects

    result = deployer.deploy("web", "apps", ReleaseManifests(general=[deployment("web")]))

    assert worker.id not in kube.objects
    assert result.report.deleted == [worker.ref]


def test_deployed_objects_carry_release_ownership(kube, tracker, storage, locker, ctx):
    cfg = DeckhandConfig(
        lock=LockConfig(retry_delay=0),
        extra_annotations={"team": "payments"},
        extra_labels={"tier": "web"},
    )
    deployer = Deployer(kube, tracker, storage, locker, config=cfg, ctx=ctx)
    deployer.deploy("web", "apps", ReleaseManifests(general=[deployment("web")], hooks=[job_hook("migrate")]))

    for res in (new_general_resource(deployment("web"), "apps"), new_hook(job_hook("migrate"), "apps")):
        meta = kube.objects[res.id]["metadata"]
        assert meta["annotations"]["meta.helm.sh/release-name"] == "web"
        assert meta["annotations"]["meta.helm.sh/release-namespace"] == "apps"
        assert meta["annotations"]["team"] == "payments"
        assert meta["labels"] == {"app.kubernetes.io/managed-by": "deckhand", "tier": "web"}


def test_adopted_orphan_is_not_deleted(deployer, kube):
    deployer.deploy("web", "apps", ReleaseManifests(general=[deployment("web"), deployment("worker")]))
    worker = new_general_resource(deployment("worker"), "apps")
    kube.objects[worker.id]["metadata"]["annotations"]["meta.helm.sh/release-name"] = "jobs"

    result = deployer.deploy("web", "apps", ReleaseManifests(general=[deployment("web")]))

    assert worker.id in kube.objects
    assert result.report.deleted == []
    assert PhaseType.CLEANUP not in [p.type for p in result.plan.phases]


def test_replicas_forced_only_on_creation(deployer, kube):
    annotations = {"deckhand.io/replicas-on-creation": "3"}
    doc = deployment("web", annotations=annotations)
    web = new_general_resource(doc, "apps")

    deployer.deploy("web", "apps", ReleaseManifests(general=[doc]))
    assert kube.objects[web.id]["spec"]["replicas"] == 3

    kube.calls.clear()
    deployer.deploy("web", "apps", ReleaseManifests(general=[deployment("web", image="nginx:1.26", annotations=annotations)]))
    assert kube.calls_of("create") == []
    assert kube.objects[web.id]["spec"]["replicas"] == 1


def test_rollback_to_previous_deployed(deployer, kube, storage):
    web = new_general_resource(deployment("web"), "apps")
    deployer.deploy("web", "apps", ReleaseManifests(general=[deployment("web")]), values={"tag": "1.25"})
    deployer.deploy("web", "apps", ReleaseManifests(general=[deployment("web", image="nginx:1.26")]))
    assert _image(kube, web) == "nginx:1.26"

    result = deployer.rollback("web", "apps")

    assert result.release.revision == 3
    assert result.release.deploy_type == DeployType.ROLLBACK
    assert result.release.values == {"tag": "1.25"}
    assert _image(kube, web) == "nginx:1.25"
    assert _statuses(storage) == [(1, S.SUPERSEDED), (2, S.SUPERSEDED), (3, S.DEPLOYED)]


def test_rollback_without_target(deployer):
    deployer.deploy("web", "apps", ReleaseManifests(general=[deployment("web")]))
    with pytest.raises(DeployError):
        deployer.rollback("web", "apps")
    with pytest.raises(DeployError):
        deployer.rollback("web", "apps", revision=9)


def test_plan_does_not_touch_anything(deployer, kube, storage, locker, capture):
    result = deployer.plan("web", "apps", ReleaseManifests(general=[deployment("web")]))

    assert result.report is None
    assert result.release.status == S.PENDING_INSTALL
    assert PhaseType.DEPLOY_RESOURCES in [p.type for p in result.plan.phases]
    assert kube.calls == []
    assert storage.query({"name": "web"}) == []
    assert capture.of(LockAcquired) == []
    assert len(capture.of(PlanComputed)) == 1


def test_history_lists_revisions(deployer):
    deployer.deploy("web", "apps", ReleaseManifests(general=[deployment("web")]))
    deployer.deploy("web", "apps", ReleaseManifests(general=[deployment("web")]))
    assert [r.revision for r in deployer.history("web", "apps")] == [1, 2]


def test_invalid_release_name_is_rejected_before_locking(deployer, locker, capture):
    with pytest.raises(ReleaseNameValidationError):
        deployer.deploy("Web_App", "apps", ReleaseManifests(general=[deployment("web")]))
    assert capture.events == []
