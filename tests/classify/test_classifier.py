import pytest

from deckhand.classify.classifier import ResourceClassifier, ResourceStatus
from deckhand.errors import MultiError
from deckhand.resource.common import ResourceOrigin
from deckhand.resource.resource import new_crd, new_general_resource, new_hook, new_release_namespace

from fakes import configmap, crd, deployment, job_hook


def _classify(kube, **kw):
    return ResourceClassifier(kube, parallelism=4).classify(**kw)


def test_statuses(kube):
    fresh = new_general_resource(deployment("fresh"), "apps")
    same = new_general_resource(deployment("same"), "apps")
    changed = new_general_resource(deployment("changed", image="nginx:1.26"), "apps")
    frozen = new_general_resource(configmap("frozen", {"a": "2"}), "apps")

    kube.seed(same)
    kube.seed(new_general_resource(deployment("changed"), "apps"))
    kube.seed(new_general_resource(configmap("frozen", {"a": "1"}), "apps"))
    kube.immutable.add(frozen.id)

    c = _classify(kube, general=[fresh, same, changed, frozen])
    status = {e.local.ref.name: e.status for e in c.general()}
    assert status == {
        "fresh": ResourceStatus.NON_EXISTING,
        "same": ResourceStatus.UP_TO_DATE,
        "changed": ResourceStatus.OUTDATED,
        "frozen": ResourceStatus.OUTDATED_IMMUTABLE,
    }
    assert c.find(changed.id).existing
    assert c.find(changed.id).outdated
    assert not c.find(fresh.id).existing


def test_release_namespace_classified_separately(kube):
    ns = new_release_namespace("apps")
    c = _classify(kube, release_namespace=ns)
    assert c.release_namespace.status == ResourceStatus.NON_EXISTING
    assert c.entries == []


def test_unsupported_general_resource(kube):
    res = new_general_resource({"apiVersion": "example.com/v1", "kind": "Widget", "metadata": {"name": "w"}}, "apps")
    kube.unsupported.add(("example.com", "Widget"))
    c = _classify(kube, general=[res])
    assert c.find(res.id).status == ResourceStatus.UNSUPPORTED


def test_type_provided_by_preloaded_crd_is_non_existing(kube):
    widget_crd = new_crd(crd())
    res = new_general_resource({"apiVersion": "example.com/v1", "kind": "Widget", "metadata": {"name": "w"}}, "apps")
    kube.unsupported.add(("example.com", "Widget"))
    c = _classify(kube, crds=[widget_crd], general=[res])
    assert c.find(res.id).status == ResourceStatus.NON_EXISTING
    assert c.find(widget_crd.id).status == ResourceStatus.NON_EXISTING


def test_unsupported_crd_is_an_error(kube):
    widget_crd = new_crd(crd())
    kube.unsupported.add(("apiextensions.k8s.io", "CustomResourceDefinition"))
    with pytest.raises(MultiError):
        _classify(kube, crds=[widget_crd])


def test_partitions(kube):
    c = _classify(
        kube,
        crds=[new_crd(crd())],
        hooks=[new_hook(job_hook("migrate"), "apps")],
        general=[new_general_resource(configmap("cfg"), "apps")],
    )
    assert [e.local.ref.name for e in c.crds()] == ["widgets.example.com"]
    assert [e.local.ref.name for e in c.hooks()] == ["migrate"]
    assert [e.local.ref.name for e in c.general()] == ["cfg"]


def test_orphan_detected(kube):
    old = new_general_resource(configmap("x"), "apps")
    kube.seed(old)
    keep = new_general_resource(configmap("y"), "apps")
    kube.seed(keep)

    c = _classify(kube, general=[keep], previous_general=[old, keep])
    assert [o.id for o in c.orphans] == [old.id]
    assert c.orphans[0].origin == ResourceOrigin.LIVE


def test_previous_resource_gone_from_cluster_is_not_orphan(kube):
    old = new_general_resource(configmap("x"), "apps")
    c = _classify(kube, general=[], previous_general=[old])
    assert c.orphans == []


def test_shared_uid_is_not_orphan(kube):
    old = new_general_resource(configmap("x"), "apps")
    obj = kube.seed(old)
    # the new manifest points at the same live object under another reference
    renamed = new_general_resource({"apiVersion": "v1", "kind": "ConfigMap", "metadata": {"name": "x-alias"}}, "apps")
    kube.objects[renamed.id] = dict(obj, metadata=dict(obj["metadata"], name="x-alias"))

    c = _classify(kube, general=[renamed], previous_general=[old])
    assert c.orphans == []


def test_classification_never_mutates(kube):
    kube.seed(new_general_resource(deployment("web"), "apps"))
    _classify(kube, general=[new_general_resource(deployment("web", image="nginx:2"), "apps")])
    assert kube.calls == []
