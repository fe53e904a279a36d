"""
This defines the base class for all Transport types.
"""

# Standard
from typing import Iterator, Optional
import abc

# Local
from ..patch import PatchType
from .kube_event import KubeWatchEvent


class TransportBase(abc.ABC):
    """
    Base class for transports which carry out the remote operations needed to
    reconcile resources. Every operation addresses a single object.
    """

    @abc.abstractmethod
    def get_object(
        self,
        kind: str,
        name: str,
        namespace: Optional[str] = None,
        api_version: Optional[str] = None,
    ) -> dict:
        """Fetch the current state of a given object by name

        Args:
            kind:  str
                The kind of the object to fetch
            name:  str
                The full name of the object to fetch
            namespace:  Optional[str]
                The namespace to search for the object or None for cluster
                scoped kinds
            api_version:  Optional[str]
                The api_version of the resource kind to fetch

        Returns:
            current_state:  dict
                The dict representation of the current object

        Raises:
            NotFoundError if the object does not exist
        """

    @abc.abstractmethod
    def create_object(self, resource_definition: dict) -> dict:
        """Create the given object

        Args:
            resource_definition:  dict
                The full manifest of the object to create

        Returns:
            created:  dict
                The object as returned by the server
        """

    @abc.abstractmethod
    def patch_object(  # pylint: disable=too-many-arguments
        self,
        kind: str,
        name: str,
        namespace: Optional[str],
        api_version: Optional[str],
        patch: bytes,
        patch_type: PatchType,
    ) -> dict:
        """Send a patch for the given object

        Args:
            kind:  str
                The kind of the object to patch
            name:  str
                The name of the object to patch
            namespace:  Optional[str]
                The namespace of the object
            api_version:  Optional[str]
                The api_version of the resource kind
            patch:  bytes
                The serialized patch body
            patch_type:  PatchType
                The format of the patch body

        Returns:
            patched:  dict
                The object as returned by the server after the patch
        """

    @abc.abstractmethod
    def delete_object(
        self,
        kind: str,
        name: str,
        namespace: Optional[str] = None,
        api_version: Optional[str] = None,
    ):
        """Delete the given object with background cascading. The call returns
        once the delete request is accepted.

        Raises:
            NotFoundError if the object does not exist
        """

    @abc.abstractmethod
    def watch_objects(  # pylint: disable=too-many-arguments
        self,
        kind: str,
        api_version: Optional[str] = None,
        namespace: Optional[str] = None,
        name: Optional[str] = None,
        field_selector: Optional[str] = None,
        resource_version: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> Iterator[KubeWatchEvent]:
        """Watch objects and yield a stream of KubeWatchEvents. Without a
        resource_version, the current state of every matching object is
        yielded first as ADDED events.

        Args:
            kind:  str
                The kind of the objects to watch
            api_version:  str
                The api_version of the resource kind
            namespace:  str
                The namespace to watch
            name:  str
                Restrict the watch to the object with this name
            field_selector:  str
                The field_selector to filter the resources
            resource_version:  str
                The resource_version the events must be newer than
            timeout:  float
                Number of seconds after which the stream ends

        Returns:
            watch_stream: Iterator[KubeWatchEvent]
                A stream of KubeWatchEvents which ends at the timeout
        """

    @abc.abstractmethod
    def replace_status(self, resource_definition: dict) -> dict:
        """Replace the status subresource of the given object. The
        resourceVersion in the definition is used for conflict detection.

        Raises:
            ResourceConflictError if the resourceVersion is out of date
        """

    @abc.abstractmethod
    def is_reachable(self) -> bool:
        """Check whether the cluster API can be contacted"""
