"""
Data model for the resources being reconciled: a handle for each declared
object, an ordered list of handles, and the result of a reconciliation
"""
# Standard
from dataclasses import dataclass, field
from typing import Iterable, Iterator, List, NamedTuple, Optional

# First Party
import alog

log = alog.use_channel("RSRC")


class ResourceIdentity(NamedTuple):
    """The identity of a resource within a ResourceList"""

    kind: str
    namespace: Optional[str]
    name: str
    api_version: str


class ResourceMapping(NamedTuple):
    """The information needed to address a resource kind on the server"""

    group: str
    version: str
    kind: str
    namespaced: bool

    @property
    def api_version(self) -> str:
        if self.group:
            return f"{self.group}/{self.version}"
        return self.version


class ResourceHandle:
    """Handle on a single declared resource. The handle carries the last-known
    representation of the object which is refreshed from the server as the
    reconciliation makes changes.
    """

    def __init__(self, definition: dict):
        self.object = definition
        self.kind = definition.get("kind")
        self.api_version = definition.get("apiVersion")
        metadata = definition.get("metadata", {})
        self.name = metadata.get("name")
        self.namespace = metadata.get("namespace")

        assert self.kind is not None, "No kind found"
        assert self.api_version is not None, "No apiVersion found"
        assert self.name is not None, "No name found"

    @property
    def identity(self) -> ResourceIdentity:
        return ResourceIdentity(self.kind, self.namespace, self.name, self.api_version)

    @property
    def mapping(self) -> ResourceMapping:
        group, _, version = self.api_version.rpartition("/")
        return ResourceMapping(group, version, self.kind, self.namespace is not None)

    @property
    def resource_version(self) -> Optional[str]:
        return self.object.get("metadata", {}).get("resourceVersion")

    def refresh(self, obj: dict):
        """Replace the held representation with the one returned by the
        server. The identity never changes.
        """
        log.debug3(
            "Refreshing %s to resourceVersion %s",
            self,
            obj.get("metadata", {}).get("resourceVersion"),
        )
        self.object = obj

    def __str__(self):
        if self.namespace:
            return f"{self.api_version}/{self.kind}/{self.namespace}/{self.name}"
        return f"{self.api_version}/{self.kind}/{self.name}"

    def __repr__(self):
        return str(self)

    def __hash__(self):
        """Hash excludes the object so that two handles on the same resource
        are equal regardless of the representation they carry
        """
        return hash(self.identity)

    def __eq__(self, other):
        if not isinstance(other, ResourceHandle):
            return NotImplemented
        return self.identity == other.identity


class ResourceList:
    """Ordered collection of ResourceHandles with unique identities. Order is
    the declared manifest order and is preserved by every operation.
    """

    def __init__(self, handles: Optional[Iterable[ResourceHandle]] = None):
        self._handles: List[ResourceHandle] = []
        self._index = {}
        for handle in handles or []:
            self.append(handle)

    @classmethod
    def from_definitions(cls, definitions: Iterable[dict]) -> "ResourceList":
        return cls(ResourceHandle(definition) for definition in definitions)

    def append(self, handle: ResourceHandle):
        if handle.identity in self._index:
            raise ValueError(f"Duplicate resource in list: {handle}")
        self._index[handle.identity] = handle
        self._handles.append(handle)

    def get(self, handle: ResourceHandle) -> Optional[ResourceHandle]:
        """Look up the handle in this list with the same identity as the given
        handle
        """
        return self._index.get(handle.identity)

    def difference(self, other: "ResourceList") -> "ResourceList":
        """Get all handles in this list whose identity is absent from other"""
        return ResourceList(
            handle for handle in self._handles if other.get(handle) is None
        )

    def __sub__(self, other: "ResourceList") -> "ResourceList":
        return self.difference(other)

    def __contains__(self, handle) -> bool:
        return isinstance(handle, ResourceHandle) and handle.identity in self._index

    def __iter__(self) -> Iterator[ResourceHandle]:
        return iter(list(self._handles))

    def __len__(self) -> int:
        return len(self._handles)

    def __getitem__(self, idx):
        return self._handles[idx]

    def __eq__(self, other):
        if not isinstance(other, ResourceList):
            return NotImplemented
        return [h.identity for h in self] == [h.identity for h in other]

    def __repr__(self):
        return f"ResourceList({self._handles})"


@dataclass
class ReconcileResult:
    """The resources touched by a single reconciliation call"""

    created: ResourceList = field(default_factory=ResourceList)
    updated: ResourceList = field(default_factory=ResourceList)
    deleted: ResourceList = field(default_factory=ResourceList)
