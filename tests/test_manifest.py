"""
Tests for splitting, parsing and sorting rendered manifests
"""

# Third Party
import pytest

# Local
from kreconcile.exceptions import ManifestError
from kreconcile.manifest import (
    INSTALL_ORDER,
    UNINSTALL_ORDER,
    HookEvent,
    Manifest,
    parse_manifests,
    sort_by_kind,
    sort_manifests,
    split_manifests,
)

## Helpers #####################################################################


def doc(kind, name, annotations=None):
    lines = ["apiVersion: v1", f"kind: {kind}", "metadata:", f"  name: {name}"]
    if annotations:
        lines.append("  annotations:")
        lines.extend(f'    {key}: "{val}"' for key, val in annotations.items())
    return "\n".join(lines) + "\n"


def manifest(kind, name="x"):
    return Manifest(name=name, content="", head={"kind": kind})


## split_manifests #############################################################


def test_split_manifests():
    """Make sure documents are split and empty documents dropped"""
    text = "---\n" + doc("ConfigMap", "a") + "---\n\n---\n" + doc("Secret", "b")
    manifests = split_manifests(text)
    assert list(manifests) == ["manifest-0", "manifest-1"]
    assert "name: a" in manifests["manifest-0"]
    assert "name: b" in manifests["manifest-1"]


def test_split_manifests_single():
    """Make sure a stream without separators is one document"""
    assert list(split_manifests(doc("ConfigMap", "a"))) == ["manifest-0"]
    assert split_manifests("") == {}


## parse_manifests #############################################################


def test_parse_manifests_order():
    """Make sure documents are parsed in stream order"""
    text = doc("Service", "a") + "---\n" + doc("ConfigMap", "b")
    parsed = parse_manifests(text)
    assert [obj["kind"] for obj in parsed] == ["Service", "ConfigMap"]


def test_parse_manifests_skips_comments():
    """Make sure documents holding only comments are skipped"""
    text = "# just a comment\n---\n" + doc("ConfigMap", "a")
    assert len(parse_manifests(text)) == 1


def test_parse_manifests_bad_yaml():
    """Make sure invalid yaml names the source"""
    with pytest.raises(ManifestError, match="my-file.yaml"):
        parse_manifests("kind: [unclosed", "my-file.yaml")


def test_parse_manifests_not_a_mapping():
    """Make sure a document that is not a mapping is rejected"""
    with pytest.raises(ManifestError):
        parse_manifests("- a\n- b\n")


## sort_manifests ##############################################################


def test_sort_manifests_generic():
    """Make sure generic manifests are sorted in install order"""
    files = {
        "templates/deploy.yaml": doc("Deployment", "d"),
        "templates/all.yaml": doc("Service", "s")
        + "---\n"
        + doc("Namespace", "n")
        + "---\n"
        + doc("ConfigMap", "c"),
    }
    hooks, manifests = sort_manifests(files)
    assert not hooks
    assert [m.kind for m in manifests] == [
        "Namespace",
        "ConfigMap",
        "Service",
        "Deployment",
    ]
    assert manifests[0].name == "templates/all.yaml"


def test_sort_manifests_uninstall_order():
    """Make sure the sort order can be swapped"""
    files = {"a.yaml": doc("Namespace", "n") + "---\n" + doc("Service", "s")}
    _, manifests = sort_manifests(files, sort_order=UNINSTALL_ORDER)
    assert [m.kind for m in manifests] == ["Service", "Namespace"]


def test_sort_manifests_skips_partials_and_empty():
    """Make sure partials and empty files are not sorted"""
    files = {
        "templates/_helpers.tpl": doc("ConfigMap", "partial"),
        "templates/empty.yaml": "  \n",
        "templates/cm.yaml": doc("ConfigMap", "cm"),
    }
    hooks, manifests = sort_manifests(files)
    assert not hooks
    assert [m.head["metadata"]["name"] for m in manifests] == ["cm"]


def test_sort_manifests_hooks():
    """Make sure hook annotations are parsed into hooks"""
    files = {
        "templates/job.yaml": doc(
            "Job",
            "migrate",
            {
                "helm.sh/hook": "pre-install, Post-Upgrade",
                "helm.sh/hook-weight": "5",
                "helm.sh/hook-delete-policy": "hook-succeeded,before-hook-creation",
            },
        ),
        "templates/cm.yaml": doc("ConfigMap", "cm"),
    }
    hooks, manifests = sort_manifests(files)
    assert [m.kind for m in manifests] == ["ConfigMap"]
    assert len(hooks) == 1
    hook = hooks[0]
    assert hook.name == "migrate"
    assert hook.kind == "Job"
    assert hook.path == "templates/job.yaml"
    assert hook.events == [HookEvent.PRE_INSTALL, HookEvent.POST_UPGRADE]
    assert hook.weight == 5
    assert hook.delete_policies == ["hook-succeeded", "before-hook-creation"]


def test_sort_manifests_hook_defaults():
    """Make sure a hook without weight or policies gets the defaults and the
    old test hook name is accepted
    """
    files = {
        "a.yaml": doc("Pod", "test", {"helm.sh/hook": "test-success"}),
        "b.yaml": doc(
            "Pod",
            "weighted",
            {"helm.sh/hook": "test", "helm.sh/hook-weight": "not-a-number"},
        ),
    }
    hooks, _ = sort_manifests(files)
    assert [hook.events for hook in hooks] == [[HookEvent.TEST], [HookEvent.TEST]]
    assert [hook.weight for hook in hooks] == [0, 0]
    assert hooks[0].delete_policies == []


def test_sort_manifests_unknown_hook():
    """Make sure a document with an unknown hook is dropped"""
    files = {"a.yaml": doc("Job", "j", {"helm.sh/hook": "pre-install,sometime"})}
    hooks, manifests = sort_manifests(files)
    assert not hooks
    assert not manifests


def test_sort_manifests_unavailable_api_version():
    """Make sure documents with unknown apiVersions are still sorted"""
    files = {"a.yaml": doc("ConfigMap", "c").replace("v1", "foo.bar.com/v1")}
    _, manifests = sort_manifests(files, api_versions=["v1"])
    assert len(manifests) == 1


def test_sort_manifests_bad_yaml():
    """Make sure a bad document names the file"""
    with pytest.raises(ManifestError, match="bad.yaml"):
        sort_manifests({"bad.yaml": "kind: [unclosed"})


## sort_by_kind ################################################################


def test_sort_by_kind_unknown_last():
    """Make sure unknown kinds go last ordered by name"""
    manifests = [
        manifest("Widget"),
        manifest("Deployment"),
        manifest("Gadget"),
        manifest("Namespace"),
    ]
    assert [m.kind for m in sort_by_kind(manifests)] == [
        "Namespace",
        "Deployment",
        "Gadget",
        "Widget",
    ]


def test_sort_by_kind_stable():
    """Make sure manifests of the same kind keep their order"""
    manifests = [manifest("ConfigMap", str(idx)) for idx in range(5)]
    assert [m.name for m in sort_by_kind(manifests)] == ["0", "1", "2", "3", "4"]


def test_uninstall_order_covers_install_order():
    """Make sure both orders hold the same kinds with namespaces removed last"""
    assert set(INSTALL_ORDER) == set(UNINSTALL_ORDER)
    assert UNINSTALL_ORDER.index("Namespace") == len(UNINSTALL_ORDER) - 1
    assert UNINSTALL_ORDER[0] == "APIService"
