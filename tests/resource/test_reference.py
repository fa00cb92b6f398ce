import textwrap
from pathlib import Path

import pytest

from deckhand.errors import ManifestValidationError
from deckhand.resource.loader import build_resources, load_manifests, parse_documents
from deckhand.resource.reference import Reference, diff_references

from fakes import deployment


def test_reference_from_manifest_defaults_namespace():
    ref = Reference.from_manifest(deployment("web"), "apps")
    assert ref == Reference(name="web", namespace="apps", group="apps", version="v1", kind="Deployment")
    assert str(ref) == "apps/v1/Deployment/apps/web"
    assert ref.api_version == "apps/v1"


def test_reference_keeps_explicit_namespace():
    ref = Reference.from_manifest(deployment("web", namespace="other"), "apps")
    assert ref.namespace == "other"


def test_cluster_scoped_kind_has_no_namespace():
    ref = Reference.from_manifest({"apiVersion": "v1", "kind": "Namespace", "metadata": {"name": "apps"}}, "apps")
    assert ref.namespace == ""
    assert str(ref) == "v1/Namespace/apps"


def test_missing_fields_rejected():
    with pytest.raises(ManifestValidationError) as ei:
        Reference.from_manifest({"kind": "ConfigMap", "metadata": {}}, "apps")
    assert "apiVersion" in str(ei.value)
    assert "metadata.name" in str(ei.value)


def test_diff_references():
    a = Reference("a", "ns", "", "v1", "ConfigMap")
    b = Reference("b", "ns", "", "v1", "ConfigMap")
    assert diff_references([a, b], [b]) == [a]


def test_parse_documents_skips_empty_and_expands_lists():
    text = textwrap.dedent("""
        ---
        apiVersion: v1
        kind: List
        items:
          - apiVersion: v1
            kind: ConfigMap
            metadata: {name: one}
          - apiVersion: v1
            kind: ConfigMap
            metadata: {name: two}
        ---
        ---
        apiVersion: v1
        kind: Secret
        metadata: {name: three}
    """)
    docs = parse_documents(text)
    assert [d["metadata"]["name"] for d in docs] == ["one", "two", "three"]


def test_load_manifests_splits_crds_hooks_and_general(tmp_path: Path):
    (tmp_path / "crds").mkdir()
    (tmp_path / "crds" / "widgets.yaml").write_text(textwrap.dedent("""
        apiVersion: apiextensions.k8s.io/v1
        kind: CustomResourceDefinition
        metadata: {name: widgets.example.com}
        spec:
          group: example.com
          names: {kind: Widget, plural: widgets}
    """))
    (tmp_path / "app.yaml").write_text(textwrap.dedent("""
        apiVersion: v1
        kind: ConfigMap
        metadata: {name: cfg}
        ---
        apiVersion: batch/v1
        kind: Job
        metadata:
          name: migrate
          annotations:
            helm.sh/hook: pre-upgrade
    """))
    (tmp_path / "README.md").write_text("ignored")

    manifests = load_manifests(tmp_path)
    assert len(manifests.crds) == 1
    assert [d["metadata"]["name"] for d in manifests.hooks] == ["migrate"]
    assert [d["metadata"]["name"] for d in manifests.general] == ["cfg"]

    resources = build_resources(manifests, "apps")
    assert resources.crds[0].ref.namespace == ""
    assert resources.hooks[0].ref.namespace == "apps"


def test_invalid_yaml_is_validation_error(tmp_path: Path):
    f = tmp_path / "bad.yaml"
    f.write_text("kind: [unclosed")
    with pytest.raises(ManifestValidationError):
        load_manifests(f)
