"""
This module decides whether a resource needs a patch and in which format the
patch should be sent to the server
"""

# Standard
from enum import Enum
from typing import Any, NamedTuple, Optional
import copy
import json

# First Party
import alog

# Local
from . import constants
from .exceptions import ConversionError, NotRegisteredError
from .patch_strategic_merge import create_two_way_merge_patch
from .resource import ResourceHandle
from .scheme import Scheme, is_schema_definition, is_unstructured

log = alog.use_channel("PATCH")

## Public Interface ############################################################


class PatchType(Enum):
    """The patch formats understood by the server. The value is the content
    type sent with the request.
    """

    JSON = "application/json-patch+json"
    MERGE = "application/merge-patch+json"
    STRATEGIC_MERGE = "application/strategic-merge-patch+json"


class PatchPlan(NamedTuple):
    """A computed patch. When patch is None there is nothing to send and the
    patch_type carries no meaning.
    """

    patch: Optional[bytes]
    patch_type: PatchType


def compute_patch(
    desired: ResourceHandle,
    current: dict,
    scheme: Scheme,
) -> PatchPlan:
    """Compute the patch that turns the current object into the desired one

    Args:
        desired:  ResourceHandle
            The handle holding the declared object
        current:  dict
            The object to diff against (either the live object or the last
            applied declaration)
        scheme:  Scheme
            The scheme used to find the versioned form of the desired object

    Returns:
        plan:  PatchPlan
            The patch bytes (or None for a no-op) and the patch format

    Raises:
        ConversionError if the desired object fails to convert for any
        reason other than its kind being unknown
    """
    old_obj, new_obj = clean_manifests(current, desired.object)
    old_data = serialize(old_obj)
    new_data = serialize(new_obj)
    if old_data == new_data:
        log.debug2("No change found for %s", desired)
        return PatchPlan(None, PatchType.STRATEGIC_MERGE)

    try:
        versioned = scheme.convert_to_version(desired)
    except NotRegisteredError as err:
        log.debug2("Falling back to merge patch for %s: %s", desired, err)
        versioned = None
    except ConversionError as err:
        raise ConversionError(f"failed to get versioned object: {err}") from err

    if versioned is None or is_unstructured(versioned) or is_schema_definition(
        versioned
    ):
        patch = create_merge_patch(old_obj, new_obj)
        log.debug3("Merge patch for %s: %s", desired, patch)
        return PatchPlan(serialize(patch), PatchType.MERGE)

    patch = create_two_way_merge_patch(old_obj, new_obj, desired.kind)
    log.debug3("Strategic merge patch for %s: %s", desired, patch)
    return PatchPlan(serialize(patch), PatchType.STRATEGIC_MERGE)


def serialize(obj: Any) -> bytes:
    """Canonical byte form of an object. Key order never affects the result."""
    return json.dumps(obj, sort_keys=True, separators=(",", ":")).encode("utf-8")


def clean_manifests(manifest_a: dict, manifest_b: dict):
    """Clean two manifests before being compared. This removes fields that
    the server changes on every write and the last-applied annotation, which
    must never be diffed.

    Returns:
        Tuple[dict, dict]: The cleaned manifests
    """
    return clean_manifest(manifest_a), clean_manifest(manifest_b)


def clean_manifest(manifest: dict) -> dict:
    manifest = copy.deepcopy(manifest)
    manifest.pop("status", None)
    metadata = manifest.get("metadata", {})
    for metadata_field in constants.SERVER_MANAGED_METADATA:
        metadata.pop(metadata_field, None)
    annotations = metadata.get("annotations")
    if annotations and constants.LAST_APPLIED_CONFIG_ANNOTATION in annotations:
        log.debug3("Removing [%s]", constants.LAST_APPLIED_CONFIG_ANNOTATION)
        del annotations[constants.LAST_APPLIED_CONFIG_ANNOTATION]
        if not annotations:
            del metadata["annotations"]
    return manifest


## JSON Merge Patch (rfc 7396) #################################################


def create_merge_patch(original: Any, modified: Any) -> Any:
    """Create a JSON Merge Patch. Lists are always replaced as a whole.

    Args:
        original:  Any
            The JSON value before the patch
        modified:  Any
            The JSON value after the patch

    Returns:
        patch:  Any
            The patch which turns original into modified
    """
    if not isinstance(original, dict) or not isinstance(modified, dict):
        return copy.deepcopy(modified)

    patch = {}
    for key in original:
        if key not in modified:
            patch[key] = None
    for key, val in modified.items():
        if key not in original:
            patch[key] = copy.deepcopy(val)
        elif original[key] != val:
            if isinstance(original[key], dict) and isinstance(val, dict):
                patch[key] = create_merge_patch(original[key], val)
            else:
                patch[key] = copy.deepcopy(val)
    return patch


def apply_merge_patch(target: Any, patch: Any) -> Any:
    """Apply a JSON Merge Patch. The target is not modified."""
    if not isinstance(patch, dict):
        return copy.deepcopy(patch)

    result = copy.deepcopy(target) if isinstance(target, dict) else {}
    for key, val in patch.items():
        if val is None:
            result.pop(key, None)
        else:
            result[key] = apply_merge_patch(result.get(key), val)
    return result
