"""
The Waiter blocks until resources reach their readiness milestone by watching
them through the Transport.

Each resource is watched on its own with the full timeout. The watch ends in
exactly one of the WatchOutcome states. Kinds without an entry in
READINESS_CHECKS are ready as soon as they are observed.
"""

# Standard
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Callable, List, Optional, Tuple

# First Party
import alog

# Local
from . import config
from .exceptions import (
    ClusterError,
    ResourceFailedError,
    WaitTimeoutError,
    WatchStreamError,
)
from .resource import ResourceHandle, ResourceList
from .transport import KubeEventType, KubeWatchEvent, TransportBase

log = alog.use_channel("WAIT")

## Outcomes ####################################################################


class WatchOutcome(Enum):
    """Terminal states of a single resource's readiness watch"""

    READY = "Ready"
    FAILED = "Failed"
    TIMED_OUT = "TimedOut"
    DELETED = "Deleted"


@dataclass
class WatchResult:
    """The terminal state reached by one resource. For failures, the reason
    holds the explanation given by the server and error_event tells whether
    the failure came from an error event on the watch stream.
    """

    handle: ResourceHandle
    outcome: WatchOutcome
    reason: str = ""
    error_event: bool = False


class PodPhase(Enum):
    """Phases of a Pod. UNKNOWN is also used when a watch ends without
    observing a terminal phase.
    """

    PENDING = "Pending"
    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    UNKNOWN = "Unknown"


## Readiness Checks ############################################################

# A readiness check inspects an observed object and returns the terminal
# outcome with its reason, or None to keep watching
ReadinessCheck = Callable[[dict], Optional[Tuple[WatchOutcome, str]]]


def _job_ready(obj: dict) -> Optional[Tuple[WatchOutcome, str]]:
    status = obj.get("status") or {}
    complete = _first_condition("Complete", status)
    if complete.get("status") == "True":
        return WatchOutcome.READY, ""
    failed = _first_condition("Failed", status)
    if failed.get("status") == "True":
        return WatchOutcome.FAILED, failed.get("reason", "")
    log.debug(
        "%s: Jobs active: %d, jobs failed: %d, jobs succeeded: %d",
        obj.get("metadata", {}).get("name"),
        status.get("active", 0),
        status.get("failed", 0),
        status.get("succeeded", 0),
    )
    return None


def _pod_ready(obj: dict) -> Optional[Tuple[WatchOutcome, str]]:
    status = obj.get("status") or {}
    phase = status.get("phase")
    if phase == PodPhase.SUCCEEDED.value:
        return WatchOutcome.READY, ""
    if phase == PodPhase.FAILED.value:
        return WatchOutcome.FAILED, status.get("reason") or status.get(
            "message", PodPhase.FAILED.value
        )
    log.debug("Pod %s is %s", obj.get("metadata", {}).get("name"), phase)
    return None


def _observed_ready(_: dict) -> Optional[Tuple[WatchOutcome, str]]:
    return WatchOutcome.READY, ""


# Per-kind readiness checks. New kinds get a real readiness milestone by adding
# an entry here.
READINESS_CHECKS = MappingProxyType(
    {
        "Job": _job_ready,
        "Pod": _pod_ready,
    }
)


## Waiter ######################################################################


class Waiter:
    """The Waiter watches resources one at a time until each reaches a
    terminal state
    """

    def __init__(self, transport: TransportBase):
        self.transport = transport

    @alog.logged_function(log.debug)
    def wait(
        self,
        resources: ResourceList,
        timeout: Optional[float] = None,
    ) -> List[WatchResult]:
        """Wait for every resource in order to become ready. The first resource
        that fails or times out aborts the wait.

        Args:
            resources:  ResourceList
                The resources to wait on
            timeout:  Optional[float]
                Seconds to wait for each resource. Defaults to the
                wait_timeout config value.

        Returns:
            results:  List[WatchResult]
                One READY or DELETED result per resource

        Raises:
            WaitTimeoutError if a resource does not finish before the timeout
            ResourceFailedError if a resource reaches a failed milestone
            WatchStreamError if the watch reports an error event
        """
        timeout = config.wait_timeout if timeout is None else timeout
        log.debug(
            "Beginning wait for %d resources with timeout of %s",
            len(resources),
            timeout,
        )
        results = []
        for handle in resources:
            result = self.watch_until_ready(handle, timeout)
            _raise_for_outcome(result)
            results.append(result)
        return results

    def watch_until_ready(self, handle: ResourceHandle, timeout: float) -> WatchResult:
        """Run the readiness watch for a single resource

        Args:
            handle:  ResourceHandle
                The resource to watch
            timeout:  float
                Seconds to wait before the watch times out

        Returns:
            result:  WatchResult
                The terminal state of the watch
        """
        check = READINESS_CHECKS.get(handle.kind, _observed_ready)
        log.debug2("Watching for changes to %s with timeout of %s", handle, timeout)

        events = self.transport.watch_objects(
            handle.kind,
            api_version=handle.api_version,
            namespace=handle.namespace,
            name=handle.name,
            timeout=timeout,
        )
        try:
            for event in events:
                result = self._handle_event(handle, event, check)
                if result is not None:
                    log.debug("%s finished with %s", handle, result.outcome.value)
                    return result
        finally:
            _close(events)

        log.debug("Timed out waiting on %s", handle)
        return WatchResult(handle, WatchOutcome.TIMED_OUT)

    ## Implementation Details ##################################################

    @staticmethod
    def _handle_event(
        handle: ResourceHandle,
        event: KubeWatchEvent,
        check: ReadinessCheck,
    ) -> Optional[WatchResult]:
        log.debug3("%s event for %s", event.type.value, handle)
        if event.type == KubeEventType.DELETED:
            return WatchResult(handle, WatchOutcome.DELETED)
        if event.type == KubeEventType.ERROR:
            return WatchResult(
                handle,
                WatchOutcome.FAILED,
                reason=_error_reason(event.object),
                error_event=True,
            )
        outcome = check(event.object)
        if outcome is None:
            return None
        handle.refresh(event.object)
        return WatchResult(handle, outcome[0], reason=outcome[1])


@alog.logged_function(log.debug)
def wait_and_get_completed_pod_phase(
    transport: TransportBase,
    name: str,
    namespace: Optional[str] = None,
    timeout: Optional[float] = None,
) -> PodPhase:
    """Watch a single pod by name until it reaches a terminal phase

    Args:
        transport:  TransportBase
            The transport used for the watch
        name:  str
            The name of the pod
        namespace:  Optional[str]
            The namespace of the pod
        timeout:  Optional[float]
            Seconds to wait. Defaults to the wait_timeout config value.

    Returns:
        phase:  PodPhase
            SUCCEEDED or FAILED, or UNKNOWN if the watch ended first
    """
    timeout = config.wait_timeout if timeout is None else timeout
    namespace = namespace or config.default_namespace
    events = transport.watch_objects(
        "Pod",
        api_version="v1",
        namespace=namespace,
        field_selector=f"metadata.name={name}",
        timeout=timeout,
    )
    try:
        for event in events:
            if event.type == KubeEventType.ERROR:
                raise WatchStreamError(
                    f"failed to watch pod {name}: {_error_reason(event.object)}"
                )
            if event.object.get("kind", "Pod") != "Pod":
                raise ClusterError(f"{name} not a pod")
            phase = (event.object.get("status") or {}).get("phase")
            log.debug2("Pod %s is in phase %s", name, phase)
            if phase in (PodPhase.SUCCEEDED.value, PodPhase.FAILED.value):
                return PodPhase(phase)
    finally:
        _close(events)
    return PodPhase.UNKNOWN


## Helpers #####################################################################


def _first_condition(type_name: str, status: dict) -> dict:
    """Servers may repeat a condition type. The first entry wins."""
    return next(
        (
            cond
            for cond in status.get("conditions") or []
            if cond.get("type") == type_name
        ),
        {},
    )


def _raise_for_outcome(result: WatchResult):
    handle = result.handle
    if result.outcome == WatchOutcome.TIMED_OUT:
        raise WaitTimeoutError(f"timed out waiting for the condition on {handle}")
    if result.outcome == WatchOutcome.FAILED:
        if result.error_event:
            raise WatchStreamError(f"failed to deploy {handle.name}: {result.reason}")
        raise ResourceFailedError(
            f"{handle.kind} {handle.name} failed: {result.reason}",
            reason=result.reason,
        )


def _error_reason(status: dict) -> str:
    if not isinstance(status, dict):
        return str(status)
    return status.get("message") or status.get("reason") or "unknown error"


def _close(events):
    """Stop a watch stream early so that its resources are released"""
    close = getattr(events, "close", None)
    if close is not None:
        close()
