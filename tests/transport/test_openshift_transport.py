"""
Tests for the OpenshiftTransport using a mocked DynamicClient
"""

# Standard
from unittest import mock
import json

# Third Party
from kubernetes.client.exceptions import ApiException
from openshift.dynamic import exceptions as dyn_errors
import pytest
import urllib3

# Local
from kreconcile.exceptions import ClusterError, NotFoundError, ResourceConflictError
from kreconcile.patch import PatchType
from kreconcile.test_helpers.helpers import (
    TEST_NAMESPACE,
    library_config,
    make_configmap,
    make_crd,
)
from kreconcile.transport import KubeEventType, OpenshiftTransport

## Helpers #####################################################################


class ResourceInstance:
    """Stand-in for the openshift ResourceInstance"""

    def __init__(self, content):
        self.content = content

    def to_dict(self):
        return self.content


def make_transport():
    """Make a transport whose client returns a single mock resource handle"""
    dynamic_client = mock.MagicMock()
    resource_handle = mock.MagicMock()
    dynamic_client.resources.get.return_value = resource_handle
    return OpenshiftTransport(dynamic_client), resource_handle


def api_error(error_type, status, reason):
    return error_type(ApiException(status=status, reason=reason))


def event(event_type, resource_version, name="test-cm"):
    return {
        "type": event_type,
        "object": {
            "kind": "ConfigMap",
            "metadata": {"name": name, "resourceVersion": resource_version},
        },
    }


## CRUD ########################################################################


def test_get_object():
    """Make sure get returns the dict form of the object"""
    transport, handle = make_transport()
    handle.get.return_value = ResourceInstance(make_configmap())
    assert transport.get_object("ConfigMap", "test-cm", TEST_NAMESPACE, "v1") == (
        make_configmap()
    )
    handle.get.assert_called_once_with(name="test-cm", namespace=TEST_NAMESPACE)
    transport.client.resources.get.assert_called_once_with(
        kind="ConfigMap", api_version="v1"
    )


def test_get_object_not_found():
    """Make sure a 404 is translated"""
    transport, handle = make_transport()
    handle.get.side_effect = api_error(dyn_errors.NotFoundError, 404, "Not Found")
    with pytest.raises(NotFoundError):
        transport.get_object("ConfigMap", "test-cm", TEST_NAMESPACE, "v1")


def test_get_object_unknown_kind():
    """Make sure an unknown kind is not found"""
    transport, _ = make_transport()
    transport.client.resources.get.side_effect = dyn_errors.ResourceNotFoundError
    with pytest.raises(NotFoundError):
        transport.get_object("Gadget", "g", TEST_NAMESPACE, "foo.bar.com/v1")
    assert transport.client.resources.get.call_count == 2
    transport.client.resources.get.assert_called_with(
        short_names=["Gadget"], api_version="foo.bar.com/v1"
    )


def test_cluster_scoped_handle():
    """Make sure handles for cluster scoped objects are not namespaced"""
    transport, handle = make_transport()
    handle.namespaced = True
    handle.get.return_value = ResourceInstance(make_crd())
    transport.get_object("CustomResourceDefinition", "widgets.foo.bar.com")
    assert handle.namespaced is False


def test_create_object():
    """Make sure create sends the body with the field manager"""
    transport, handle = make_transport()
    handle.create.return_value = ResourceInstance(make_configmap())
    with library_config(field_manager="tester"):
        assert transport.create_object(make_configmap()) == make_configmap()
    handle.create.assert_called_once_with(
        body=make_configmap(), namespace=TEST_NAMESPACE, field_manager="tester"
    )


def test_create_object_no_handle():
    """Make sure creating an unknown kind fails"""
    transport, _ = make_transport()
    transport.client.resources.get.side_effect = dyn_errors.ResourceNotFoundError
    with pytest.raises(ClusterError):
        transport.create_object(make_configmap())


def test_create_object_server_error():
    """Make sure other server errors are cluster errors"""
    transport, handle = make_transport()
    handle.create.side_effect = api_error(
        dyn_errors.InternalServerError, 500, "Internal Server Error"
    )
    with pytest.raises(ClusterError, match="create ConfigMap/test-cm"):
        transport.create_object(make_configmap())


@pytest.mark.parametrize(
    "patch_type", [PatchType.JSON, PatchType.MERGE, PatchType.STRATEGIC_MERGE]
)
def test_patch_object(patch_type):
    """Make sure the patch is sent with the content type of its format"""
    transport, handle = make_transport()
    handle.patch.return_value = ResourceInstance(make_configmap(data={"a": "b"}))
    body = {"data": {"a": "b"}}
    result = transport.patch_object(
        "ConfigMap",
        "test-cm",
        TEST_NAMESPACE,
        "v1",
        json.dumps(body).encode("utf-8"),
        patch_type,
    )
    assert result["data"] == {"a": "b"}
    kwargs = handle.patch.call_args.kwargs
    assert kwargs["body"] == body
    assert kwargs["content_type"] == patch_type.value
    assert kwargs["name"] == "test-cm"


def test_delete_object():
    """Make sure deletes propagate in the background"""
    transport, handle = make_transport()
    transport.delete_object("ConfigMap", "test-cm", TEST_NAMESPACE, "v1")
    kwargs = handle.delete.call_args.kwargs
    assert kwargs["body"]["propagationPolicy"] == "Background"
    assert kwargs["name"] == "test-cm"


def test_delete_object_not_found():
    """Make sure a missing object is not found"""
    transport, handle = make_transport()
    handle.delete.side_effect = api_error(dyn_errors.NotFoundError, 404, "Not Found")
    with pytest.raises(NotFoundError):
        transport.delete_object("ConfigMap", "test-cm", TEST_NAMESPACE, "v1")


def test_replace_status_conflict():
    """Make sure a 409 is a conflict"""
    transport, handle = make_transport()
    handle.status.replace.side_effect = api_error(
        dyn_errors.ConflictError, 409, "Conflict"
    )
    with pytest.raises(ResourceConflictError):
        transport.replace_status(make_configmap())


def test_replace_status():
    """Make sure the status subresource is replaced"""
    transport, handle = make_transport()
    handle.status.replace.return_value = ResourceInstance(make_configmap())
    assert transport.replace_status(make_configmap()) == make_configmap()
    handle.status.replace.assert_called_once_with(body=make_configmap())


## Watch #######################################################################


def test_watch_restarts_from_last_version():
    """Make sure the watch resumes from the last seen resourceVersion and
    reports unexpected errors as error events
    """
    transport, handle = make_transport()
    watch = mock.MagicMock()
    watch.stream.side_effect = [
        iter([event("ADDED", "1"), event("MODIFIED", "2")]),
        ApiException(status=500, reason="Internal Server Error"),
    ]
    events = list(
        transport.watch_objects(
            "ConfigMap",
            api_version="v1",
            namespace=TEST_NAMESPACE,
            name="test-cm",
            watch_manager=watch,
        )
    )
    assert [evt.type for evt in events] == [
        KubeEventType.ADDED,
        KubeEventType.MODIFIED,
        KubeEventType.ERROR,
    ]
    assert events[2].object["code"] == 500

    first_call, second_call = watch.stream.call_args_list
    assert first_call.args == (handle.get,)
    assert first_call.kwargs["field_selector"] == "metadata.name=test-cm"
    assert first_call.kwargs["resource_version"] is None
    assert second_call.kwargs["resource_version"] == "2"


def test_watch_resets_expired_version():
    """Make sure a 410 restarts the watch without a resourceVersion"""
    transport, _ = make_transport()
    watch = mock.MagicMock()
    watch.stream.side_effect = [
        ApiException(status=410, reason="Gone"),
        iter([event("ADDED", "7")]),
        ApiException(status=403, reason="Forbidden"),
    ]
    events = list(
        transport.watch_objects("ConfigMap", resource_version="3", watch_manager=watch)
    )
    assert [evt.type for evt in events] == [KubeEventType.ADDED, KubeEventType.ERROR]
    versions = [call.kwargs["resource_version"] for call in watch.stream.call_args_list]
    assert versions == ["3", None, "7"]


def test_watch_restarts_on_connection_errors():
    """Make sure socket timeouts and bad chunks restart the watch"""
    transport, _ = make_transport()
    watch = mock.MagicMock()
    watch.stream.side_effect = [
        urllib3.exceptions.ReadTimeoutError(None, "/api", "timed out"),
        urllib3.exceptions.ProtocolError("bad chunk"),
        iter([event("ADDED", "1")]),
        ApiException(status=500, reason="Internal Server Error"),
    ]
    events = list(transport.watch_objects("ConfigMap", watch_manager=watch))
    assert [evt.type for evt in events] == [KubeEventType.ADDED, KubeEventType.ERROR]
    assert watch.stream.call_count == 4


def test_watch_timeout():
    """Make sure the watch stops at the timeout and bounds the server timeout"""
    transport, _ = make_transport()
    watch = mock.MagicMock()
    watch.stream.side_effect = lambda *_, **__: iter([])
    with library_config(watch_server_timeout=3600):
        events = list(
            transport.watch_objects("ConfigMap", timeout=0.05, watch_manager=watch)
        )
    assert not events
    assert watch.stream.called
    assert watch.stream.call_args_list[0].kwargs["timeout_seconds"] == 1


def test_watch_zero_timeout():
    """Make sure a watch with no time left never opens a stream"""
    transport, _ = make_transport()
    watch = mock.MagicMock()
    events = list(transport.watch_objects("ConfigMap", timeout=0, watch_manager=watch))
    assert not events
    watch.stream.assert_not_called()


def test_watch_field_selector_combined():
    """Make sure the name is added to an existing field selector"""
    transport, _ = make_transport()
    watch = mock.MagicMock()
    watch.stream.side_effect = [ApiException(status=500, reason="Error")]
    list(
        transport.watch_objects(
            "Pod",
            name="p",
            field_selector="status.phase=Running",
            watch_manager=watch,
        )
    )
    assert (
        watch.stream.call_args.kwargs["field_selector"]
        == "status.phase=Running,metadata.name=p"
    )


## Reachability ################################################################


def test_is_reachable():
    """Make sure reachability is checked with the version endpoint"""
    transport, _ = make_transport()
    with mock.patch("kubernetes.client.VersionApi") as version_api:
        assert transport.is_reachable()
        version_api.return_value.get_code.side_effect = ApiException(status=503)
        assert not transport.is_reachable()
        version_api.return_value.get_code.side_effect = (
            urllib3.exceptions.MaxRetryError(None, "/version")
        )
        assert not transport.is_reachable()
