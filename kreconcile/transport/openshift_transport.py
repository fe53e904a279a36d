"""
This Transport is responsible for delegating cluster operations to the
openshift library. It is the one that will be used when reconciling against a
live cluster, either from inside the cluster or from outside of it.
"""
# Standard
from typing import Iterator, Optional
import json
import math
import time

# Third Party
from kubernetes import client
from kubernetes.watch import Watch
from openshift.dynamic import DynamicClient
from openshift.dynamic import exceptions as dyn_errors
from openshift.dynamic.resource import Resource
import kubernetes
import urllib3

# First Party
import alog

# Local
from .. import config
from ..constants import DELETE_PROPAGATION_POLICY
from ..exceptions import (
    ClusterError,
    NotFoundError,
    ResourceConflictError,
    assert_cluster,
)
from ..patch import PatchType
from .base import TransportBase
from .kube_event import KubeEventType, KubeWatchEvent

log = alog.use_channel("OSFTT")

## Transport ###################################################################


class OpenshiftTransport(TransportBase):
    """This Transport uses the openshift DynamicClient to interact with the
    cluster
    """

    def __init__(self, dynamic_client: Optional[DynamicClient] = None):
        """
        Args:
            dynamic_client:  Optional[DynamicClient]
                A preconfigured client to use. If not given, one is created
                lazily from the in-cluster or local kube config.
        """
        self._client = dynamic_client

    @property
    def client(self):
        """Lazy property access to the client"""
        if self._client is None:
            log.debug("Initializing openshift client")
            self._client = self._setup_client()
        return self._client

    @alog.logged_function(log.debug2)
    def get_object(self, kind, name, namespace=None, api_version=None):
        resource_handle = self._get_resource_handle(kind, api_version, namespace)
        if resource_handle is None:
            raise NotFoundError(f"the server doesn't have a resource type {kind!r}")
        with _translated_errors(f"get {kind}/{name}"):
            return resource_handle.get(name=name, namespace=namespace).to_dict()

    @alog.logged_function(log.debug2)
    def create_object(self, resource_definition):
        api_version, kind, name, namespace = _get_resource_identifiers(
            resource_definition
        )
        resource_handle = self._get_resource_handle(kind, api_version, namespace)
        assert_cluster(
            resource_handle,
            f"Failed to fetch resource handle for {namespace}/{api_version}/{kind}",
        )
        log.debug2(
            "Attempting to create [%s/%s/%s] in %s", api_version, kind, name, namespace
        )
        with _translated_errors(f"create {kind}/{name}"):
            return resource_handle.create(
                body=resource_definition,
                namespace=namespace,
                field_manager=config.field_manager,
            ).to_dict()

    @alog.logged_function(log.debug2)
    def patch_object(  # pylint: disable=too-many-arguments
        self,
        kind,
        name,
        namespace,
        api_version,
        patch,
        patch_type,
    ):
        resource_handle = self._get_resource_handle(kind, api_version, namespace)
        assert_cluster(
            resource_handle,
            f"Failed to fetch resource handle for {namespace}/{api_version}/{kind}",
        )
        log.debug2(
            "Attempting to patch [%s/%s/%s] in %s with %s",
            api_version,
            kind,
            name,
            namespace,
            patch_type,
        )
        with _translated_errors(f"patch {kind}/{name}"):
            return resource_handle.patch(
                body=json.loads(patch),
                name=name,
                namespace=namespace,
                content_type=PatchType(patch_type).value,
                field_manager=config.field_manager,
            ).to_dict()

    @alog.logged_function(log.debug2)
    def delete_object(self, kind, name, namespace=None, api_version=None):
        resource_handle = self._get_resource_handle(kind, api_version, namespace)
        if resource_handle is None:
            raise NotFoundError(f"the server doesn't have a resource type {kind!r}")
        log.debug2(
            "Attempting to delete [%s/%s/%s] from %s",
            api_version,
            kind,
            name,
            namespace,
        )
        with _translated_errors(f"delete {kind}/{name}"):
            resource_handle.delete(
                name=name,
                namespace=namespace,
                body={
                    "kind": "DeleteOptions",
                    "apiVersion": "v1",
                    "propagationPolicy": DELETE_PROPAGATION_POLICY,
                },
            )

    def watch_objects(  # pylint: disable=too-many-arguments
        self,
        kind,
        api_version=None,
        namespace=None,
        name=None,
        field_selector=None,
        resource_version=None,
        timeout=None,
        watch_manager: Optional[Watch] = None,
    ) -> Iterator[KubeWatchEvent]:
        watch_manager = watch_manager if watch_manager else Watch()
        resource_handle = self._get_resource_handle(kind, api_version, namespace)
        assert_cluster(
            resource_handle,
            f"Failed to fetch resource handle for {namespace}/{api_version}/{kind}",
        )
        if name:
            name_selector = f"metadata.name={name}"
            field_selector = (
                f"{field_selector},{name_selector}" if field_selector else name_selector
            )

        end_time = time.monotonic() + timeout if timeout is not None else None
        while True:
            server_timeout = config.watch_server_timeout
            if end_time is not None:
                remaining = end_time - time.monotonic()
                if remaining <= 0:
                    log.debug2("Watch on %s/%s timed out", kind, api_version)
                    return
                server_timeout = max(1, math.ceil(min(remaining, server_timeout)))

            try:
                for event_obj in watch_manager.stream(
                    resource_handle.get,
                    resource_version=resource_version,
                    namespace=namespace,
                    field_selector=field_selector,
                    serialize=False,
                    timeout_seconds=server_timeout,
                    _request_timeout=config.watch_client_timeout,
                ):
                    event_type = KubeEventType(event_obj["type"])
                    event_resource = event_obj["object"]
                    if not isinstance(event_resource, dict):
                        event_resource = event_resource.to_dict()
                    if event_type != KubeEventType.ERROR:
                        resource_version = event_resource.get("metadata", {}).get(
                            "resourceVersion", resource_version
                        )
                    yield KubeWatchEvent(event_type, event_resource)
                    if end_time is not None and time.monotonic() >= end_time:
                        return
            except client.exceptions.ApiException as exception:
                if exception.status == 410:
                    log.debug2(
                        "Resource age expired, restarting watch %s/%s",
                        kind,
                        api_version,
                    )
                    resource_version = None
                else:
                    log.info("Unexpected ApiException received on watch: %s", exception)
                    yield KubeWatchEvent(
                        KubeEventType.ERROR,
                        {
                            "kind": "Status",
                            "code": exception.status,
                            "reason": exception.reason,
                            "message": str(exception.body or exception.reason),
                        },
                    )
                    return
            except urllib3.exceptions.ReadTimeoutError:
                log.debug4("Watch Socket closed, restarting watch %s/%s", kind, api_version)
            except urllib3.exceptions.ProtocolError:
                log.debug2(
                    "Invalid Chunk from server, restarting watch %s/%s",
                    kind,
                    api_version,
                )

    @alog.logged_function(log.debug2)
    def replace_status(self, resource_definition):
        api_version, kind, name, namespace = _get_resource_identifiers(
            resource_definition
        )
        resource_handle = self._get_resource_handle(kind, api_version, namespace)
        assert_cluster(
            resource_handle,
            f"Failed to fetch resource handle for {namespace}/{api_version}/{kind}",
        )
        with _translated_errors(f"replace status of {kind}/{name}"):
            return resource_handle.status.replace(body=resource_definition).to_dict()

    def is_reachable(self):
        try:
            kubernetes.client.VersionApi(self.client.client).get_code()
        except (
            client.exceptions.ApiException,
            urllib3.exceptions.HTTPError,
            kubernetes.config.ConfigException,
        ) as err:
            log.debug("Cluster is not reachable: %s", err)
            return False
        return True

    ## Implementation Helpers ##################################################

    @staticmethod
    def _setup_client():
        """Create a DynamicClient that will work based on where the library is
        running
        """
        # Try in-cluster config
        try:
            log.debug2("Running with in-cluster config")

            # Create Empty Config and load in-cluster information
            kube_config = kubernetes.client.Configuration()
            kubernetes.config.load_incluster_config(client_configuration=kube_config)

            # Generate ApiClient and return Openshift DynamicClient
            api_client = kubernetes.client.ApiClient(kube_config)
            return DynamicClient(api_client)

        # Fall back to out-of-cluster config
        except kubernetes.config.ConfigException:
            log.debug2("Running with out-of-cluster config")
            return DynamicClient(kubernetes.config.new_client_from_config())

    def _get_resource_handle(
        self,
        kind: str,
        api_version: Optional[str],
        namespace: Optional[str],
    ) -> Optional[Resource]:
        """Get the openshift resource handle for a specified kind and api_version"""
        resources = None
        try:
            resources = self.client.resources.get(kind=kind, api_version=api_version)
        except (dyn_errors.ResourceNotFoundError, dyn_errors.ResourceNotUniqueError):
            try:
                resources = self.client.resources.get(
                    short_names=[kind], api_version=api_version
                )
            except (
                dyn_errors.ResourceNotFoundError,
                dyn_errors.ResourceNotUniqueError,
            ):
                log.debug(
                    "No objects of kind [%s] found or multiple objects matching "
                    "request found",
                    kind,
                )

        # If resource is not namespaced set kubernetes api namespaced to false
        if resources is not None and not namespace:
            resources.namespaced = False
        return resources


## Helpers #####################################################################


def _get_resource_identifiers(resource_definition: dict):
    """Helper for getting the required parts of a single resource definition"""
    api_version = resource_definition.get("apiVersion")
    kind = resource_definition.get("kind")
    name = resource_definition.get("metadata", {}).get("name")
    namespace = resource_definition.get("metadata", {}).get("namespace")
    assert None not in [
        kind,
        name,
        api_version,
    ], "Cannot handle resource without kind, name or apiVersion"
    return api_version, kind, name, namespace


class _translated_errors:  # pylint: disable=invalid-name
    """Context manager that translates the openshift client errors into the
    kreconcile exception types
    """

    def __init__(self, operation: str):
        self.operation = operation

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        if exc_value is None:
            return False
        if isinstance(exc_value, dyn_errors.NotFoundError):
            raise NotFoundError(
                f"{self.operation}: {exc_value.summary()}"
            ) from exc_value
        if isinstance(exc_value, dyn_errors.ConflictError):
            raise ResourceConflictError(
                f"{self.operation}: {exc_value.summary()}"
            ) from exc_value
        if isinstance(exc_value, dyn_errors.DynamicApiError):
            raise ClusterError(f"{self.operation}: {exc_value.summary()}") from exc_value
        return False
