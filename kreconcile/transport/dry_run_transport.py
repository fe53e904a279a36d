"""
The DryRunTransport implements the Transport interface but does not actually
interact with the cluster and instead holds the state of the cluster in a
local map.
"""

# Standard
from datetime import datetime
from queue import Empty, Queue
from threading import RLock
from typing import Iterator, List, Optional
import copy
import json
import time
import uuid

# Third Party
from jsonpatch import JsonPatch, JsonPatchException, JsonPointerException

# First Party
import alog

# Local
from ..exceptions import ClusterError, NotFoundError, ResourceConflictError
from ..patch import PatchType, apply_merge_patch
from ..patch_strategic_merge import patch_strategic_merge
from .base import TransportBase
from .kube_event import KubeEventType, KubeWatchEvent

log = alog.use_channel("DRY-RUN")

# Lock to ensure writes are thread safe
DRY_RUN_CLUSTER_LOCK = RLock()


class DryRunTransport(TransportBase):
    """
    Transport which doesn't actually talk to a cluster!
    """

    def __init__(self, resources=None, strict_resource_version=True):
        """Construct with an optional list of objects that already exist

        Args:
            resources:  Optional[List[dict]]
                Manifests to seed the in-memory cluster with
            strict_resource_version:  bool
                If true, status writes with an out of date resourceVersion are
                rejected with a conflict
        """
        self.strict_resource_version = strict_resource_version
        self._cluster_content = {}
        self._last_resource_version = 0

        # Registered watch queues
        self._queue_lock = RLock()
        self._watch_queues = set()

        for resource in resources or []:
            self._store(copy.deepcopy(resource), notify=False)

    ## Interface ###############################################################

    def get_object(self, kind, name, namespace=None, api_version=None):
        log.info("DRY RUN get_object of [%s/%s] in [%s]", kind, name, namespace)
        content = self._lookup(kind, name, namespace, api_version)
        if content is None:
            raise NotFoundError(f'{kind} "{name}" not found')
        return copy.deepcopy(content)

    def create_object(self, resource_definition):
        kind, name, namespace, api_version = _identifiers(resource_definition)
        log.info("DRY RUN create_object of [%s/%s] in [%s]", kind, name, namespace)
        with DRY_RUN_CLUSTER_LOCK:
            if self._lookup(kind, name, namespace, api_version) is not None:
                raise ClusterError(f'{kind} "{name}" already exists')
            return copy.deepcopy(self._store(copy.deepcopy(resource_definition)))

    def patch_object(  # pylint: disable=too-many-arguments
        self,
        kind,
        name,
        namespace,
        api_version,
        patch,
        patch_type,
    ):
        log.info(
            "DRY RUN patch_object of [%s/%s] in [%s] with %s",
            kind,
            name,
            namespace,
            patch_type,
        )
        body = json.loads(patch)
        log.debug4("Patch body: %s", body)
        with DRY_RUN_CLUSTER_LOCK:
            current = self._lookup(kind, name, namespace, api_version)
            if current is None:
                raise NotFoundError(f'{kind} "{name}" not found')
            try:
                if patch_type is PatchType.MERGE:
                    updated = apply_merge_patch(current, body)
                elif patch_type is PatchType.STRATEGIC_MERGE:
                    updated = patch_strategic_merge(current, body)
                else:
                    updated = JsonPatch(body).apply(current)
            except (ValueError, JsonPatchException, JsonPointerException) as err:
                raise ClusterError(
                    f'unable to apply patch to {kind} "{name}": {err}'
                ) from err
            return copy.deepcopy(self._store(updated))

    def delete_object(self, kind, name, namespace=None, api_version=None):
        log.info("DRY RUN delete_object of [%s/%s] in [%s]", kind, name, namespace)
        with DRY_RUN_CLUSTER_LOCK:
            current = self._lookup(kind, name, namespace, api_version)
            if current is None:
                raise NotFoundError(f'{kind} "{name}" not found')
            self._delete_key(
                namespace, kind, current.get("apiVersion"), current["metadata"]["name"]
            )
        self._notify(KubeEventType.DELETED, current)

    def watch_objects(  # pylint: disable=too-many-arguments
        self,
        kind,
        api_version=None,
        namespace=None,
        name=None,
        field_selector=None,
        resource_version=None,
        timeout=None,
    ) -> Iterator[KubeWatchEvent]:
        """Watch the in-memory cluster for changes to matching objects"""
        log.info("DRY RUN watch_objects of [%s/%s] in [%s]", kind, name, namespace)
        event_queue = Queue()
        with self._queue_lock:
            self._watch_queues.add(event_queue)

        end_time = time.monotonic() + timeout if timeout is not None else None
        try:
            if timeout is not None and timeout <= 0:
                log.debug2("Dry run watch has no time left")
                return

            if not resource_version:
                for manifest in self._list(kind, namespace, api_version):
                    if self._matches(manifest, name, field_selector):
                        log.debug2("Yielding initial state event")
                        yield KubeWatchEvent(
                            KubeEventType.ADDED, copy.deepcopy(manifest)
                        )

            while True:
                remaining = None
                if end_time is not None:
                    remaining = end_time - time.monotonic()
                    if remaining <= 0:
                        log.debug2("Dry run watch timed out")
                        return
                try:
                    event_type, manifest = event_queue.get(timeout=remaining)
                except Empty:
                    return

                if (
                    manifest.get("kind") == kind
                    and (api_version is None or manifest.get("apiVersion") == api_version)
                    and (
                        namespace is None
                        or manifest.get("metadata", {}).get("namespace") == namespace
                    )
                    and self._matches(manifest, name, field_selector)
                ):
                    log.debug2("Yielding %s event", event_type)
                    yield KubeWatchEvent(event_type, copy.deepcopy(manifest))
        finally:
            with self._queue_lock:
                self._watch_queues.discard(event_queue)

    def replace_status(self, resource_definition):
        kind, name, namespace, api_version = _identifiers(resource_definition)
        log.info("DRY RUN replace_status of [%s/%s] in [%s]", kind, name, namespace)
        with DRY_RUN_CLUSTER_LOCK:
            current = self._lookup(kind, name, namespace, api_version)
            if current is None:
                raise NotFoundError(f'{kind} "{name}" not found')
            requested_version = resource_definition.get("metadata", {}).get(
                "resourceVersion"
            )
            current_version = current["metadata"].get("resourceVersion")
            if (
                self.strict_resource_version
                and requested_version
                and requested_version != current_version
            ):
                raise ResourceConflictError(
                    f'Operation cannot be fulfilled on {kind} "{name}": the '
                    "object has been modified"
                )
            updated = copy.deepcopy(current)
            updated["status"] = copy.deepcopy(resource_definition.get("status"))
            return copy.deepcopy(self._store(updated))

    def is_reachable(self):
        return True

    ## Implementation Details ##################################################

    def _lookup(self, kind, name, namespace, api_version) -> Optional[dict]:
        kind_entries = self._cluster_content.get(namespace, {}).get(kind, {})
        matches = [
            entries[name]
            for api_ver, entries in kind_entries.items()
            if name in entries and (api_version is None or api_ver == api_version)
        ]
        log.debug3(
            "Found %d matches for [%s/%s] in %s", len(matches), kind, name, namespace
        )
        if len(matches) == 1:
            return matches[0]
        return None

    def _list(self, kind, namespace, api_version) -> List[dict]:
        namespaces = (
            [namespace] if namespace is not None else list(self._cluster_content)
        )
        manifests = []
        for ns in namespaces:
            for api_ver, entries in self._cluster_content.get(ns, {}).get(kind, {}).items():
                if api_version is None or api_ver == api_version:
                    manifests.extend(entries.values())
        return manifests

    @staticmethod
    def _matches(manifest, name, field_selector) -> bool:
        if name and manifest.get("metadata", {}).get("name") != name:
            return False
        if field_selector:
            return _match_field_selector(_convert_dict_to_dot(manifest), field_selector)
        return True

    def _store(self, resource: dict, notify: bool = True) -> dict:
        kind, name, namespace, api_version = _identifiers(resource)
        with DRY_RUN_CLUSTER_LOCK:
            entries = (
                self._cluster_content.setdefault(namespace, {})
                .setdefault(kind, {})
                .setdefault(api_version, {})
            )
            event_type = (
                KubeEventType.MODIFIED if name in entries else KubeEventType.ADDED
            )
            previous_metadata = entries.get(name, {}).get("metadata", {})
            metadata = resource.setdefault("metadata", {})
            metadata["uid"] = previous_metadata.get(
                "uid", metadata.get("uid", str(uuid.uuid4()))
            )
            metadata["creationTimestamp"] = previous_metadata.get(
                "creationTimestamp", datetime.now().strftime("%Y-%m-%dT%H:%M:%SZ")
            )
            self._last_resource_version += 1
            metadata["resourceVersion"] = str(self._last_resource_version)
            entries[name] = resource

        if notify:
            self._notify(event_type, resource)
        return resource

    def _delete_key(self, namespace, kind, api_version, name):
        del self._cluster_content[namespace][kind][api_version][name]
        if not self._cluster_content[namespace][kind][api_version]:
            del self._cluster_content[namespace][kind][api_version]
        if not self._cluster_content[namespace][kind]:
            del self._cluster_content[namespace][kind]
        if not self._cluster_content[namespace]:
            del self._cluster_content[namespace]

    def _notify(self, event_type: KubeEventType, resource: dict):
        with self._queue_lock:
            log.debug2(
                "Updating %d watch queues with %s event",
                len(self._watch_queues),
                event_type,
            )
            for event_queue in self._watch_queues:
                event_queue.put((event_type, copy.deepcopy(resource)))


def _identifiers(resource_definition: dict):
    """Helper for getting the required parts of a single resource definition"""
    metadata = resource_definition.get("metadata", {})
    kind = resource_definition.get("kind")
    name = metadata.get("name")
    assert None not in [kind, name], "Cannot handle resource without kind or name"
    return kind, name, metadata.get("namespace"), resource_definition.get("apiVersion")


def _match_field_selector(values: dict, field_selector: str) -> bool:
    """Match the equality based subset of the kubernetes field selector
    syntax (key=value, key==value, key!=value)
    """
    for selector in field_selector.split(","):
        selector = selector.strip()
        if not selector:
            continue
        if "!=" in selector:
            key, expected = selector.split("!=", 1)
            if str(values.get(key.strip())) == expected.strip():
                return False
            continue
        key, expected = selector.replace("==", "=").split("=", 1)
        if str(values.get(key.strip())) != expected.strip():
            log.debug3("Field selector %s does not match", selector)
            return False
    return True


def _convert_dict_to_dot(dictionary, prefix=""):
    """Helper function to convert a dictionary to a map
    of strings dotted together. For example {a:{b:1},c:2}
    becomes {a.b:1,c:2}
    """
    if not isinstance(dictionary, dict):
        return {prefix: dictionary}

    output_dict = {}
    for key in dictionary:
        new_key = key if prefix == "" else f"{prefix}.{key}"
        output_dict = {**output_dict, **_convert_dict_to_dot(dictionary[key], new_key)}
    return output_dict
