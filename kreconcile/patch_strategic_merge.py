"""
This module implements Strategic Merge Patch generation and application
following the semantics in:

* kubernetes: https://github.com/kubernetes/community/blob/master/contributors/devel/sig-api-machinery/strategic-merge-patch.md

Merge semantics are looked up by position. A position is the kind followed by
the dotted path of the field (e.g. Pod.spec.containers). Elements of a keyed
list share the position of the list itself.
"""  # pylint: disable=line-too-long


# Standard
from collections import OrderedDict
from typing import Dict, Optional
import copy

# Third Party
from openshift.dynamic.apply import STRATEGIC_MERGE_PATCH_KEYS

# First Party
import alog

log = alog.use_channel("PATCH")

## Public ######################################################################


def create_two_way_merge_patch(
    original: dict,
    modified: dict,
    kind: str,
    merge_patch_keys: Optional[Dict[str, str]] = None,
) -> dict:
    """Create a Strategic Merge Patch that turns original into modified

    Args:
        original:  dict
            The dict representation of the object to patch
        modified:  dict
            The dict representation of the object after the patch
        kind:  str
            The kind of the object. This is the root of every position.
        merge_patch_keys:  Dict[str, str]
            The mapping from positions to merge keys used to align list
            elements

    Returns:
        patch:  dict
            The patch body. Empty if the two objects are equivalent.
    """
    if merge_patch_keys is None:
        merge_patch_keys = STRATEGIC_MERGE_PATCH_KEYS
    return _diff_maps(original, modified, kind, merge_patch_keys)


def patch_strategic_merge(
    resource_definition: dict,
    patch: dict,
    merge_patch_keys: Optional[Dict[str, str]] = None,
) -> dict:
    """Apply a Strategic Merge Patch based on JSON Merge Patch (rfc 7386)

    Args:
        resource_definition:  dict
            The dict representation of the kubernetes resource
        patch:  dict
            The formatted patch to apply
        merge_patch_keys:  Dict[str, str]
            The mapping from positions to merge keys used to perform merge
            semantics for list elements

    Returns:
        patched_resource_definition:  dict
            The patched version of the resource_definition
    """
    if merge_patch_keys is None:
        merge_patch_keys = STRATEGIC_MERGE_PATCH_KEYS
    return _strategic_merge(
        current=copy.deepcopy(resource_definition),
        desired=copy.deepcopy(patch),
        position=resource_definition.get("kind"),
        merge_patch_keys=merge_patch_keys,
    )


## Generation ##################################################################

DIRECTIVE_KEY = "$patch"
DIRECTIVE_REPLACE = "replace"
DIRECTIVE_MERGE = "merge"
DIRECTIVE_DELETE = "delete"
DIRECTIVE_DELETE_FROM_PRIMITIVE_LIST = "$deleteFromPrimitiveList/"
DIRECTIVE_SET_ELEMENT_ORDER = "$setElementOrder/"


def _diff_maps(
    original: dict,
    modified: dict,
    position: str,
    merge_patch_keys: Dict[str, str],
) -> dict:
    """Recursive diff of two dicts. Keys removed in modified are set to None"""
    patch = {}
    for key, val in modified.items():
        if key not in original:
            patch[key] = copy.deepcopy(val)
            continue

        orig_val = original[key]
        if orig_val == val:
            continue

        next_position = ".".join([position, key])
        if isinstance(val, dict) and isinstance(orig_val, dict):
            sub_patch = _diff_maps(orig_val, val, next_position, merge_patch_keys)
            if sub_patch:
                patch[key] = sub_patch
        elif isinstance(val, list) and isinstance(orig_val, list):
            merge_key = merge_patch_keys.get(next_position)
            if (
                merge_key
                and _is_keyed_list(orig_val, merge_key)
                and _is_keyed_list(val, merge_key)
            ):
                log.debug4("Diffing list at [%s] by [%s]", next_position, merge_key)
                sub_patch = _diff_keyed_lists(
                    orig_val, val, next_position, merge_key, merge_patch_keys
                )
                if sub_patch:
                    patch[key] = sub_patch
                element_order = _element_order(orig_val, val, merge_key)
                if element_order is not None:
                    patch[DIRECTIVE_SET_ELEMENT_ORDER + key] = element_order
            else:
                log.debug4("Replacing list at [%s]", next_position)
                patch[key] = copy.deepcopy(val)
        else:
            patch[key] = copy.deepcopy(val)

    for key in original:
        if key not in modified:
            log.debug4("Removing [%s] from [%s]", key, position)
            patch[key] = None

    return patch


def _diff_keyed_lists(
    original: list,
    modified: list,
    position: str,
    merge_key: str,
    merge_patch_keys: Dict[str, str],
) -> list:
    """Diff two lists of dicts aligned by the merge key. Removed elements are
    marked with the delete directive.
    """
    original_dict = OrderedDict([(itm[merge_key], itm) for itm in original])
    modified_keys = {itm[merge_key] for itm in modified}

    patch = []
    for item in modified:
        item_key = item[merge_key]
        if item_key not in original_dict:
            patch.append(copy.deepcopy(item))
            continue
        sub_patch = _diff_maps(
            original_dict[item_key], item, position, merge_patch_keys
        )
        if sub_patch:
            sub_patch[merge_key] = item_key
            patch.append(sub_patch)

    for item_key in original_dict:
        if item_key not in modified_keys:
            patch.append({merge_key: item_key, DIRECTIVE_KEY: DIRECTIVE_DELETE})

    return patch


def _element_order(original: list, modified: list, merge_key: str) -> Optional[list]:
    """Merging keeps surviving elements in their original order and appends
    new ones. If that does not give the modified order, return the order
    directive listing every modified element by its merge key.
    """
    modified_keys = [itm[merge_key] for itm in modified]
    original_keys = [itm[merge_key] for itm in original]
    merged_keys = [key for key in original_keys if key in modified_keys] + [
        key for key in modified_keys if key not in original_keys
    ]
    if merged_keys == modified_keys:
        return None
    log.debug4("Setting element order by [%s]: %s", merge_key, modified_keys)
    return [{merge_key: key} for key in modified_keys]


def _is_keyed_list(lst: list, merge_key: str) -> bool:
    """A list can be merged by key when every element is a dict holding a
    unique value for the key
    """
    if not all(isinstance(itm, dict) and merge_key in itm for itm in lst):
        return False
    keys = [itm[merge_key] for itm in lst]
    return len(keys) == len(set(keys))


## Application #################################################################


def _strategic_merge(  # pylint: disable=too-many-branches
    current: dict,
    desired: dict,
    position: str,
    merge_patch_keys: Dict[str, str],
) -> dict:
    """Recursive implementation of Patch Strategic Merge."""

    # If they are dicts, recurse on keys
    if isinstance(desired, dict) and isinstance(current, dict):
        log.debug4("Performing dict merge at [%s]", position)
        element_orders = {}
        for key, val in desired.items():
            # Ordering is applied once the lists are merged
            if key.startswith(DIRECTIVE_SET_ELEMENT_ORDER):
                element_orders[key.split("/", 1)[-1]] = val

            # Support deletion
            elif val is None:
                current.pop(key, None)

            # Check for the special directive to remove from a primitive list
            elif key.startswith(DIRECTIVE_DELETE_FROM_PRIMITIVE_LIST):
                _delete_from_primitive_list(current, key, val)

            # Add new keys
            elif key not in current:
                current[key] = val

            # Recurse
            else:
                current[key] = _strategic_merge(
                    current[key],
                    val,
                    ".".join([position, key]),
                    merge_patch_keys,
                )

        for target_key, order in element_orders.items():
            if target_key in current:
                current[target_key] = _set_element_order(
                    current[target_key],
                    order,
                    merge_patch_keys.get(".".join([position, target_key])),
                )

        return current

    # If they are lists, apply the strategic merge
    if isinstance(desired, list) and isinstance(current, list):
        merge_key = merge_patch_keys.get(position)
        log.debug4("Performing list merge at [%s]. Merge key: %s", position, merge_key)

        # If no merge key given for this path, do an overwrite merge
        if not merge_key:
            return desired

        for itm_list, name in [(current, "Current"), (desired, "Desired")]:
            if not all(isinstance(itm, dict) and merge_key in itm for itm in itm_list):
                raise ValueError(
                    f"{name} at [{position}] contains elements without [{merge_key}]"
                )

        current_dict = OrderedDict([(itm[merge_key], itm) for itm in current])
        for item in desired:
            item_key = item[merge_key]
            directive = item.pop(DIRECTIVE_KEY, DIRECTIVE_MERGE)
            log.debug4("Element [%s] directive: %s", item_key, directive)

            if directive == DIRECTIVE_DELETE:
                if item_key not in current_dict:
                    raise ValueError(
                        f"Invalid [{DIRECTIVE_DELETE}] on missing element [{item_key}]"
                    )
                del current_dict[item_key]

            elif directive == DIRECTIVE_REPLACE or item_key not in current_dict:
                current_dict[item_key] = item

            elif directive == DIRECTIVE_MERGE:
                current_dict[item_key] = _strategic_merge(
                    current_dict[item_key],
                    item,
                    position,
                    merge_patch_keys,
                )

            else:
                raise ValueError(f"Invalid directive: [{directive}]")

        return list(current_dict.values())

    # If not one of the special types, overwrite
    log.debug4("Performing overwrite at [%s]", position)
    return desired


def _set_element_order(target_val: list, order: list, merge_key: Optional[str]):
    """Handle the $setElementOrder directive. Elements named in the order come
    first in that order. The rest keep their relative order after them.
    """
    if not isinstance(order, list) or not isinstance(target_val, list):
        raise ValueError("Bad element order directive. Both values must be lists.")

    if merge_key:
        if not all(isinstance(itm, dict) and merge_key in itm for itm in order):
            raise ValueError(f"Element order contains elements without [{merge_key}]")
        order_keys = [itm[merge_key] for itm in order]

        def element_key(itm):
            return itm.get(merge_key) if isinstance(itm, dict) else None

    else:
        order_keys = order

        def element_key(itm):
            return itm

    def rank(itm):
        key = element_key(itm)
        return next(
            (idx for idx, order_key in enumerate(order_keys) if order_key == key),
            len(order_keys),
        )

    ranked = [(rank(itm), idx) for idx, itm in enumerate(target_val)]
    return [target_val[idx] for _, idx in sorted(ranked)]


def _delete_from_primitive_list(current: dict, key: str, val: list):
    """Handle the $deleteFromPrimitiveList directive in place"""
    target_key = key.split("/", 1)[-1]
    if target_key not in current:
        raise ValueError(f"Cannot delete from unknown primitive list [{target_key}]")
    target_val = current[target_key]
    if not isinstance(val, list):
        raise ValueError("Bad primitive list delete directive. Patch must be a list.")
    if not isinstance(target_val, list):
        raise ValueError("Bad primitive list delete directive. Target must be a list.")
    for element in val:
        try:
            target_val.remove(element)
        except ValueError as err:
            raise ValueError(
                "Bad primitive list delete directive. Element not found."
            ) from err
