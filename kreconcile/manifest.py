"""
Helpers to turn rendered manifest text into the manifests to reconcile and the
lifecycle hooks declared alongside them.

Hooks are declared with annotations:

    metadata:
      annotations:
        helm.sh/hook: pre-install,pre-upgrade
        helm.sh/hook-weight: "5"
        helm.sh/hook-delete-policy: hook-succeeded
"""

# Standard
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Dict, Iterable, List, Optional, Tuple
import os
import re

# Third Party
import yaml

# First Party
import alog

# Local
from .constants import HOOK_ANNOTATION, HOOK_DELETE_ANNOTATION, HOOK_WEIGHT_ANNOTATION
from .exceptions import ManifestError

log = alog.use_channel("MANIF")

## Types #######################################################################


class HookEvent(Enum):
    """The lifecycle events a hook can be attached to"""

    PRE_INSTALL = "pre-install"
    POST_INSTALL = "post-install"
    PRE_DELETE = "pre-delete"
    POST_DELETE = "post-delete"
    PRE_UPGRADE = "pre-upgrade"
    POST_UPGRADE = "post-upgrade"
    PRE_ROLLBACK = "pre-rollback"
    POST_ROLLBACK = "post-rollback"
    TEST = "test"
    CRD_INSTALL = "crd-install"


# Hook names accepted in the hook annotation
HOOK_EVENTS = MappingProxyType(
    {
        **{event.value: event for event in HookEvent},
        # Older name for test hooks
        "test-success": HookEvent.TEST,
    }
)


@dataclass
class Manifest:
    """A single manifest document along with the file it came from. The head
    holds the parsed document.
    """

    name: str
    content: str
    head: dict = field(default_factory=dict)

    @property
    def kind(self) -> str:
        return self.head.get("kind", "")


@dataclass
class Hook:  # pylint: disable=too-many-instance-attributes
    """A manifest that runs at one or more lifecycle events instead of being
    reconciled with the rest
    """

    name: str
    kind: str
    path: str
    manifest: str
    events: List[HookEvent] = field(default_factory=list)
    weight: int = 0
    delete_policies: List[str] = field(default_factory=list)


# Order in which kinds are installed. Kinds not listed go last.
INSTALL_ORDER = (
    "Namespace",
    "NetworkPolicy",
    "ResourceQuota",
    "LimitRange",
    "PodSecurityPolicy",
    "PodDisruptionBudget",
    "Secret",
    "ConfigMap",
    "StorageClass",
    "PersistentVolume",
    "PersistentVolumeClaim",
    "ServiceAccount",
    "CustomResourceDefinition",
    "ClusterRole",
    "ClusterRoleList",
    "ClusterRoleBinding",
    "ClusterRoleBindingList",
    "Role",
    "RoleList",
    "RoleBinding",
    "RoleBindingList",
    "Service",
    "DaemonSet",
    "Pod",
    "ReplicationController",
    "ReplicaSet",
    "Deployment",
    "HorizontalPodAutoscaler",
    "StatefulSet",
    "Job",
    "CronJob",
    "Ingress",
    "APIService",
)

# Order in which kinds are uninstalled. Kinds not listed go last.
UNINSTALL_ORDER = (
    "APIService",
    "Ingress",
    "Service",
    "CronJob",
    "Job",
    "StatefulSet",
    "HorizontalPodAutoscaler",
    "Deployment",
    "ReplicaSet",
    "ReplicationController",
    "Pod",
    "DaemonSet",
    "RoleBindingList",
    "RoleBinding",
    "RoleList",
    "Role",
    "ClusterRoleBindingList",
    "ClusterRoleBinding",
    "ClusterRoleList",
    "ClusterRole",
    "CustomResourceDefinition",
    "ServiceAccount",
    "PersistentVolumeClaim",
    "PersistentVolume",
    "StorageClass",
    "ConfigMap",
    "Secret",
    "PodDisruptionBudget",
    "PodSecurityPolicy",
    "LimitRange",
    "ResourceQuota",
    "NetworkPolicy",
    "Namespace",
)

## Public ######################################################################

_SEPARATOR = re.compile(r"(?:^|\s*\n)---\s*")


def split_manifests(text: str) -> Dict[str, str]:
    """Split a multi-document yaml stream into its documents

    Args:
        text:  str
            The yaml text with documents separated by --- lines

    Returns:
        manifests:  Dict[str, str]
            Every non-empty document keyed as manifest-<N> in stream order
    """
    manifests = {}
    count = 0
    for document in _SEPARATOR.split(text):
        if not document.strip():
            continue
        manifests[f"manifest-{count}"] = document
        count += 1
    log.debug3("Split %d manifests", count)
    return manifests


def sort_manifests(
    files: Dict[str, str],
    api_versions: Optional[Iterable[str]] = None,
    sort_order: Tuple[str, ...] = INSTALL_ORDER,
) -> Tuple[List[Hook], List[Manifest]]:
    """Sort rendered files into hooks and generic manifests

    Args:
        files:  Dict[str, str]
            Mapping from file path to the file's (possibly multi-document)
            content
        api_versions:  Optional[Iterable[str]]
            The apiVersions served by the cluster. If given, documents using
            other versions are logged but still sorted.
        sort_order:  Tuple[str, ...]
            The kind order used to sort the generic manifests

    Returns:
        hooks:  List[Hook]
            The hooks in file order
        manifests:  List[Manifest]
            The generic manifests sorted by kind

    Raises:
        ManifestError if a document is not valid yaml
    """
    available = set(api_versions) if api_versions is not None else None
    hooks = []
    generic = []
    for path, content in files.items():
        # Partials are not rendered on their own
        if os.path.basename(path).startswith("_"):
            log.debug3("Skipping partial %s", path)
            continue
        if not content.strip():
            log.debug3("Skipping empty file %s", path)
            continue

        for document in split_manifests(content).values():
            head = _parse_head(path, document)

            api_version = head.get("apiVersion")
            if api_version and available is not None and api_version not in available:
                log.warning(
                    "apiVersion %r in %s is not available, may be a crd", api_version, path
                )

            annotations = (head.get("metadata") or {}).get("annotations") or {}
            hook_types = annotations.get(HOOK_ANNOTATION)
            if hook_types is None:
                generic.append(Manifest(name=path, content=document, head=head))
                continue

            hook = _make_hook(path, document, head, annotations)
            if hook is None:
                log.info("skipping unknown hook: %r", hook_types)
                continue
            hooks.append(hook)

    return hooks, sort_by_kind(generic, sort_order)


def sort_by_kind(
    manifests: List[Manifest],
    sort_order: Tuple[str, ...] = INSTALL_ORDER,
) -> List[Manifest]:
    """Sort manifests by the position of their kind in sort_order. Manifests
    of unknown kinds go last, ordered by kind name. The sort is stable.
    """
    positions = {kind: idx for idx, kind in enumerate(sort_order)}

    def sort_key(manifest: Manifest):
        kind = manifest.kind
        if kind in positions:
            return (0, positions[kind], "")
        return (1, 0, kind)

    return sorted(manifests, key=sort_key)


def parse_manifests(text: str, path: str = "<input>") -> List[dict]:
    """Parse every non-empty document of a multi-document yaml stream in
    stream order

    Raises:
        ManifestError if a document is not a valid yaml mapping
    """
    return [
        head
        for head in (
            _parse_head(path, document) for document in split_manifests(text).values()
        )
        if head
    ]


## Implementation Details ######################################################


def _parse_head(path: str, document: str) -> dict:
    try:
        head = yaml.safe_load(document)
    except yaml.YAMLError as err:
        raise ManifestError(f"YAML parse error on {path}: {err}") from err
    if head is None:
        return {}
    if not isinstance(head, dict):
        raise ManifestError(f"YAML parse error on {path}: document is not a mapping")
    return head


def _make_hook(path: str, document: str, head: dict, annotations: dict):
    """Build the hook for a document, or None if it names an unknown hook"""
    events = []
    for hook_type in str(annotations[HOOK_ANNOTATION]).split(","):
        event = HOOK_EVENTS.get(hook_type.strip().lower())
        if event is None:
            return None
        events.append(event)

    try:
        weight = int(str(annotations.get(HOOK_WEIGHT_ANNOTATION, "")).strip())
    except ValueError:
        weight = 0

    delete_policies = []
    if HOOK_DELETE_ANNOTATION in annotations:
        delete_policies = [
            policy.strip().lower()
            for policy in str(annotations[HOOK_DELETE_ANNOTATION]).split(",")
        ]

    return Hook(
        name=(head.get("metadata") or {}).get("name", ""),
        kind=head.get("kind", ""),
        path=path,
        manifest=document,
        events=events,
        weight=weight,
        delete_policies=delete_policies,
    )