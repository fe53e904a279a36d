"""
This module holds the common functionality used to read and write the status
of resources reconciled by kreconcile.

Status writes go through the status subresource and use the resourceVersion
for optimistic concurrency. A write that loses a race is retried against the
freshly fetched object up to the configured number of retries.

The phase status written by update_phase_status has the schema:
{
    "phase": "<phase name>",
    "reason": "<human readable reason, empty on success>",
    "lastTransactionTime": "<iso timestamp>",
}
"""

# Standard
from datetime import datetime
from typing import Optional, Tuple
import copy

# Third Party
from deepdiff import DeepDiff

# First Party
import alog

# Local
from . import config
from .exceptions import KReconcileError, NotFoundError, ResourceConflictError
from .transport import TransportBase

log = alog.use_channel("STTUS")

## Public ######################################################################

# The key in the status used for the timestamp
TIMESTAMP_KEY = "lastTransactionTime"

# Keys of the phase status
PHASE_KEY = "phase"
REASON_KEY = "reason"


def make_phase_status(
    phase: str,
    reason: str = "",
    last_transaction_time: Optional[datetime] = None,
) -> dict:
    """Construct a status object holding a phase and the reason for it

    Args:
        phase:  str
            The name of the phase the resource is in
        reason:  str
            The reason for the phase, usually an error message
        last_transaction_time:  Optional[datetime]
            The time of the transition. Defaults to now.

    Returns:
        status:  dict
            The status object
    """
    last_transaction_time = last_transaction_time or datetime.now()
    return {
        PHASE_KEY: phase,
        REASON_KEY: reason,
        TIMESTAMP_KEY: last_transaction_time.isoformat(),
    }


@alog.logged_function(log.debug2)
def update_status(
    transport: TransportBase,
    resource_definition: dict,
    status: dict,
    retries: Optional[int] = None,
) -> Tuple[bool, bool]:
    """Write the status of the given resource. Conflicts caused by an out of
    date resourceVersion are retried against the latest version of the
    object.

    Args:
        transport:  TransportBase
            The transport used to write the status
        resource_definition:  dict
            The resource whose status should be written. Its resourceVersion
            is used for the first attempt.
        status:  dict
            The status to write
        retries:  Optional[int]
            The number of retries after a conflict. Defaults to the
            status_update_retries config value.

    Returns:
        success:  bool
            True if the status was written or did not need to be
        changed:  bool
            True if a write was made
    """
    retries = config.status_update_retries if retries is None else retries
    resource = copy.deepcopy(resource_definition)
    metadata = resource.get("metadata", {})
    kind = resource.get("kind")
    name = metadata.get("name")
    namespace = metadata.get("namespace")

    if not status_changed(resource.get("status"), status):
        log.debug("Status has not changed. No update")
        return True, False

    resource["status"] = status
    attempt = 0
    while True:
        try:
            transport.replace_status(resource)
            log.debug2(
                "Successfully set the status for [%s/%s] in %s", kind, name, namespace
            )
            return True, True
        except ResourceConflictError as err:
            if attempt >= retries:
                log.warning(
                    "Failed to update status for [%s/%s/%s]: %s",
                    namespace,
                    kind,
                    name,
                    err,
                )
                return False, False
            attempt += 1
            log.warning("%s %s update conflict, retrying", kind, name)

        except KReconcileError as err:
            log.warning(
                "Failed to update status for [%s/%s/%s]: %s", namespace, kind, name, err
            )
            return False, False

        try:
            latest = transport.get_object(
                kind, name, namespace, resource.get("apiVersion")
            )
        except NotFoundError as err:
            log.warning("Failed to get latest %s %s: %s", kind, name, err)
            return False, False
        resource["metadata"]["resourceVersion"] = latest.get("metadata", {}).get(
            "resourceVersion"
        )


@alog.logged_function(log.debug2)
def update_phase_status(
    transport: TransportBase,
    resource_definition: dict,
    phase: str,
    reason: str = "",
) -> Tuple[bool, bool]:
    """Shortcut to write a phase status object with update_status"""
    return update_status(
        transport, resource_definition, make_phase_status(phase, reason)
    )


def status_changed(current_status: dict, new_status: dict) -> bool:
    """Compare two status objects to determine if there is a meaningful change
    between the current status and the proposed new status. A meaningful change
    is defined as any change besides a timestamp.

    Args:
        current_status:  dict
            The raw status dict from the current resource
        new_status:  dict
            The proposed new status

    Returns:
        status_changed:  bool
            True if there is a meaningful change between the current status and
            the new status
    """
    # Status objects must be dicts
    if not isinstance(current_status, dict) or not isinstance(new_status, dict):
        return True

    # Perform a deep diff, excluding timestamps
    return bool(
        DeepDiff(
            current_status,
            new_status,
            exclude_obj_callback=lambda _, path: path.endswith(f"{TIMESTAMP_KEY}']"),
        )
    )


def get_condition(type_name: str, current_status: dict) -> dict:
    """Extract the given condition type from a status object

    Args:
        type_name:  str
            The condition type to fetch
        current_status:  dict
            The dict representation of the status for a given resource

    Returns:
        condition:  dict
            The condition object if found, empty dict otherwise
    """
    cond = [
        cond
        for cond in (current_status or {}).get("conditions") or []
        if cond.get("type") == type_name
    ]
    if cond:
        assert len(cond) == 1, f"Found multiple condition entries for {type_name}"
        return cond[0]
    return {}
