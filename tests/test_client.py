"""
Tests for the Client facade
"""

# Standard
from unittest import mock

# Third Party
import pytest

# Local
from kreconcile import Client
from kreconcile.exceptions import ClusterError, ManifestError
from kreconcile.test_helpers.helpers import (
    SOME_OTHER_NAMESPACE,
    TEST_NAMESPACE,
    MockTransport,
    library_config,
    make_configmap,
    make_pod,
    make_widget,
)
from kreconcile.transport import OpenshiftTransport
from kreconcile.wait import PodPhase, WatchOutcome

## Helpers #####################################################################

MANIFESTS = f"""
apiVersion: v1
kind: Namespace
metadata:
  name: {TEST_NAMESPACE}
---
apiVersion: v1
kind: ConfigMap
metadata:
  name: defaulted
data:
  key: value
---
apiVersion: v1
kind: ConfigMap
metadata:
  name: explicit
  namespace: {SOME_OTHER_NAMESPACE}
data:
  key: value
"""

## Construction ################################################################


def test_defaults():
    """Make sure the client builds its own collaborators by default"""
    client = Client()
    assert isinstance(client.transport, OpenshiftTransport)
    assert client.namespace == "default"


def test_default_namespace_from_config():
    """Make sure the namespace default comes from config"""
    with library_config(default_namespace="configured"):
        assert Client(MockTransport()).namespace == "configured"


## build #######################################################################


def test_build_defaults_namespace():
    """Make sure namespaced kinds without a namespace get the client's"""
    resources = Client(MockTransport(), namespace=TEST_NAMESPACE).build(MANIFESTS)
    assert [(h.kind, h.name, h.namespace) for h in resources] == [
        ("Namespace", TEST_NAMESPACE, None),
        ("ConfigMap", "defaulted", TEST_NAMESPACE),
        ("ConfigMap", "explicit", SOME_OTHER_NAMESPACE),
    ]


def test_build_bad_manifest():
    """Make sure a bad manifest is reported with its source"""
    with pytest.raises(ManifestError, match="broken.yaml"):
        Client(MockTransport()).build("kind: [", "broken.yaml")


def test_build_duplicate():
    """Make sure duplicate resources are rejected"""
    text = "---\n".join([MANIFESTS, MANIFESTS])
    with pytest.raises(ValueError):
        Client(MockTransport(), namespace=TEST_NAMESPACE).build(text)


## is_reachable ################################################################


def test_is_reachable():
    """Make sure an unreachable cluster raises"""
    Client(MockTransport()).is_reachable()
    with pytest.raises(ClusterError, match="unreachable"):
        Client(MockTransport(reachable=False)).is_reachable()


## Operations ##################################################################


def test_create_update_delete():
    """Make sure the reconciliation operations run against the transport"""
    transport = MockTransport()
    client = Client(transport, namespace=TEST_NAMESPACE)

    first = client.build(
        "\n---\n".join(
            [
                "{kind: ConfigMap, apiVersion: v1, metadata: {name: a}}",
                "{kind: ConfigMap, apiVersion: v1, metadata: {name: b}}",
            ]
        )
    )
    result = client.create(first)
    assert len(result.created) == 2

    second = client.build(
        "{kind: ConfigMap, apiVersion: v1, metadata: {name: a}, data: {k: v}}"
    )
    result = client.update(first, second)
    assert [h.name for h in result.updated] == ["a"]
    assert [h.name for h in result.deleted] == ["b"]
    assert transport.get_obj("ConfigMap", "a", TEST_NAMESPACE)["data"] == {"k": "v"}

    result, errors = client.delete(second)
    assert [h.name for h in result.deleted] == ["a"]
    assert not errors


def test_update_force_passed_through():
    """Make sure force reaches the reconciler"""
    client = Client(MockTransport())
    with mock.patch.object(client._reconciler, "update") as update_mock:
        client.update("current", "desired", force=True)
    update_mock.assert_called_once_with("current", "desired", True)


def test_wait():
    """Make sure wait watches the given resources"""
    transport = MockTransport([make_configmap(), make_widget()])
    client = Client(transport, namespace=TEST_NAMESPACE)
    resources = client.build(
        "{kind: ConfigMap, apiVersion: v1, metadata: {name: test-cm}}"
    )
    results = client.wait(resources, timeout=5)
    assert [result.outcome for result in results] == [WatchOutcome.READY]


def test_wait_and_get_completed_pod_phase():
    """Make sure the pod is watched in the client's namespace"""
    transport = MockTransport([make_pod(phase="Succeeded")])
    client = Client(transport, namespace=TEST_NAMESPACE)
    assert client.wait_and_get_completed_pod_phase("test-pod", 5) == PodPhase.SUCCEEDED
    assert transport.watch_objects.call_args.kwargs["namespace"] == TEST_NAMESPACE


def test_update_status():
    """Make sure the status is written through the transport"""
    transport = MockTransport([make_widget()])
    client = Client(transport)
    widget = transport.get_obj("Widget", "test-widget", TEST_NAMESPACE)
    assert client.update_status(widget, {"phase": "Ready"}) == (True, True)
    assert transport.get_obj("Widget", "test-widget", TEST_NAMESPACE)["status"] == {
        "phase": "Ready"
    }
