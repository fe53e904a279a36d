"""
The Client is the entrypoint for reconciling declared resources against a
cluster. It wires the Transport, Scheme, Reconciler, and Waiter together.
"""

# Standard
from typing import List, Optional, Tuple

# First Party
import alog

# Local
from . import config
from .exceptions import ClusterError
from .manifest import parse_manifests
from .reconcile import Reconciler
from .resource import ReconcileResult, ResourceList
from .scheme import Scheme
from .status import update_status
from .transport import OpenshiftTransport, TransportBase
from .wait import PodPhase, Waiter, WatchResult, wait_and_get_completed_pod_phase

log = alog.use_channel("CLIENT")


class Client:
    """Facade over the reconciliation operations for a single namespace"""

    def __init__(
        self,
        transport: Optional[TransportBase] = None,
        namespace: Optional[str] = None,
        scheme: Optional[Scheme] = None,
    ):
        """
        Args:
            transport:  Optional[TransportBase]
                The transport for remote calls. Defaults to an
                OpenshiftTransport against the configured cluster.
            namespace:  Optional[str]
                The namespace given to namespaced resources that do not
                declare one. Defaults to the default_namespace config value.
            scheme:  Optional[Scheme]
                The scheme used to select patch formats
        """
        self.transport = transport or OpenshiftTransport()
        self.namespace = namespace or config.default_namespace
        self.scheme = scheme or Scheme()
        self._reconciler = Reconciler(self.transport, self.scheme)
        self._waiter = Waiter(self.transport)

    def build(self, text: str, path: str = "<input>") -> ResourceList:
        """Parse manifest text into a ResourceList in declared order

        Args:
            text:  str
                Multi-document yaml text
            path:  str
                The name of the source used in parse errors

        Returns:
            resources:  ResourceList
                A handle for every manifest in the text
        """
        definitions = parse_manifests(text, path)
        for definition in definitions:
            metadata = definition.setdefault("metadata", {})
            if (
                definition.get("kind") not in config.cluster_scoped_kinds
                and not metadata.get("namespace")
            ):
                metadata["namespace"] = self.namespace
        log.debug2("Built %d resources from %s", len(definitions), path)
        return ResourceList.from_definitions(definitions)

    def is_reachable(self):
        """Check that the cluster can be contacted

        Raises:
            ClusterError if the cluster is unreachable
        """
        if not self.transport.is_reachable():
            raise ClusterError("Kubernetes cluster unreachable")

    def create(self, resources: ResourceList) -> ReconcileResult:
        return self._reconciler.create(resources)

    def update(
        self,
        current: ResourceList,
        desired: ResourceList,
        force: bool = False,
    ) -> ReconcileResult:
        return self._reconciler.update(current, desired, force)

    def delete(self, resources: ResourceList) -> Tuple[ReconcileResult, List[Exception]]:
        return self._reconciler.delete(resources)

    def wait(
        self,
        resources: ResourceList,
        timeout: Optional[float] = None,
    ) -> List[WatchResult]:
        return self._waiter.wait(resources, timeout)

    def wait_and_get_completed_pod_phase(
        self,
        name: str,
        timeout: Optional[float] = None,
    ) -> PodPhase:
        """Watch the named pod in the client namespace until it completes"""
        return wait_and_get_completed_pod_phase(
            self.transport, name, self.namespace, timeout
        )

    def update_status(self, resource_definition: dict, status: dict):
        """Write the status of a resource, retrying on conflicts

        Returns:
            success:  bool
            changed:  bool
        """
        return update_status(self.transport, resource_definition, status)
