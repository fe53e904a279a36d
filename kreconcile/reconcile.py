"""
The Reconciler converges the server state of a list of resources toward their
declared state by creating, patching, and deleting objects through a
Transport.

Resources are always visited strictly in list order. Create is fail-fast,
Delete is best-effort, and Update collects per-resource patch failures and
reports them together once every resource has been visited.
"""

# Standard
from typing import List, Optional, Tuple
import copy

# First Party
import alog

# Local
from .exceptions import (
    AggregateError,
    ClusterError,
    EmptyInputError,
    KReconcileError,
    NotFoundError,
    PatchConflictError,
    StaleStateError,
    UpdateAbortedError,
)
from .patch import clean_manifest, compute_patch
from .resource import ReconcileResult, ResourceHandle, ResourceList
from .scheme import Scheme
from .transport import TransportBase

log = alog.use_channel("RECON")

# Message for a delete call that found nothing to delete
NOTHING_DELETED_MESSAGE = "object not found, skipping delete"


class Reconciler:
    """The Reconciler holds the transport and scheme used to carry out
    create/update/delete reconciliations. It holds no state between calls.
    """

    def __init__(self, transport: TransportBase, scheme: Optional[Scheme] = None):
        """Construct with the collaborators for the remote operations

        Args:
            transport:  TransportBase
                The transport used for all remote calls
            scheme:  Optional[Scheme]
                The scheme used to select the patch format for each resource
        """
        self.transport = transport
        self.scheme = scheme or Scheme()

    ## Public ##################################################################

    @alog.logged_function(log.debug)
    def create(self, resources: ResourceList) -> ReconcileResult:
        """Create every resource in order, stopping at the first failure

        Args:
            resources:  ResourceList
                The resources to create

        Returns:
            result:  ReconcileResult
                The result with every resource recorded under created

        Raises:
            EmptyInputError if resources is empty
            KReconcileError from the first failed create
        """
        if not resources:
            raise EmptyInputError("no objects passed to create")

        result = ReconcileResult()
        for handle in resources:
            log.debug2("Creating %s", handle, extra={"resource": handle.object})
            self._create_resource(handle)
            result.created.append(handle)
        return result

    @alog.logged_function(log.debug)
    def delete(
        self, resources: ResourceList
    ) -> Tuple[ReconcileResult, List[Exception]]:
        """Delete every resource, continuing past individual failures. A
        resource that is already absent counts as deleted without being
        recorded.

        Args:
            resources:  ResourceList
                The resources to delete

        Returns:
            result:  ReconcileResult
                The result with the successfully deleted resources
            errors:  List[Exception]
                The failures collected along the way. If nothing was deleted
                and nothing failed, this holds a single NotFoundError.
        """
        result = ReconcileResult()
        errors = []
        for handle in resources:
            try:
                self._delete_resource(handle)
            except NotFoundError as err:
                log.debug("Skipping delete of %s: %s", handle, err)
                continue
            except KReconcileError as err:
                log.warning("Failed to delete %s: %s", handle, err)
                errors.append(err)
                continue
            result.deleted.append(handle)

        if not errors and not result.deleted:
            errors.append(NotFoundError(NOTHING_DELETED_MESSAGE))
        return result, errors

    @alog.logged_function(log.debug)
    def update(
        self,
        current: ResourceList,
        desired: ResourceList,
        force: bool = False,
    ) -> ReconcileResult:
        """Reconcile the desired resources against the previously applied
        ones. Missing resources are created, existing ones are patched, and
        resources only present in current are deleted.

        Args:
            current:  ResourceList
                The resources recorded as previously applied
            desired:  ResourceList
                The resources that should exist after the call
            force:  bool
                If true, patches are computed against the live objects and a
                rejected patch falls back to deleting and recreating the
                resource

        Returns:
            result:  ReconcileResult
                The created, updated and deleted resources

        Raises:
            StaleStateError if a live resource is missing from current
            UpdateAbortedError if a missing resource cannot be created or a
                live lookup fails. The resources handled so far are attached.
            AggregateError if any resource failed to patch. Stale resources
                are still deleted before this is raised.
        """
        result = ReconcileResult()
        update_errors = []

        for handle in desired:
            log.debug2("Reconciling %s", handle, extra={"resource": handle.object})
            try:
                live = self.transport.get_object(
                    handle.kind, handle.name, handle.namespace, handle.api_version
                )
            except NotFoundError:
                log.debug("Creating %s which does not exist yet", handle)
                try:
                    self._create_resource(handle)
                except KReconcileError as err:
                    raise UpdateAbortedError(
                        f"failed to create resource: {err}", result=result
                    ) from err
                result.created.append(handle)
                continue
            except KReconcileError as err:
                raise UpdateAbortedError(
                    f"could not get information about the resource: {err}",
                    result=result,
                ) from err

            original = current.get(handle)
            if original is None:
                raise StaleStateError(
                    f"no {handle.kind} with the name {handle.name!r} found",
                    result=result,
                )

            base = clean_manifest(live) if force else original.object
            try:
                self._update_resource(handle, base, force)
            except KReconcileError as err:
                log.warning("Error updating %s: %s", handle, err)
                update_errors.append(str(err))
            result.updated.append(handle)

        for handle in current.difference(desired):
            log.debug("Deleting stale resource %s", handle)
            try:
                self._delete_resource(handle)
            except NotFoundError:
                log.debug("Stale resource %s is already gone", handle)
                continue
            except KReconcileError as err:
                log.warning("Failed to delete %s, err: %s", handle, err)
                continue
            result.deleted.append(handle)

        if update_errors:
            raise AggregateError(
                " && ".join(update_errors), result=result, errors=update_errors
            )
        return result

    ## Implementation Details ##################################################

    def _create_resource(self, handle: ResourceHandle):
        created = self.transport.create_object(copy.deepcopy(handle.object))
        handle.refresh(created)

    def _delete_resource(self, handle: ResourceHandle):
        self.transport.delete_object(
            handle.kind, handle.name, handle.namespace, handle.api_version
        )

    def _update_resource(self, handle: ResourceHandle, base: dict, force: bool):
        """Patch a single resource from base to its declared state"""
        plan = compute_patch(handle, base, self.scheme)

        if plan.patch is None:
            log.debug2("Looks like there are no changes for %s", handle)
            handle.refresh(
                self.transport.get_object(
                    handle.kind, handle.name, handle.namespace, handle.api_version
                )
            )
            return

        log.debug2("Patching %s with %s", handle, plan.patch_type.name)
        try:
            patched = self.transport.patch_object(
                handle.kind,
                handle.name,
                handle.namespace,
                handle.api_version,
                plan.patch,
                plan.patch_type,
            )
        except KReconcileError as err:
            if not force:
                log.debug("Cannot patch %s: %s", handle, err)
                raise PatchConflictError(
                    f"cannot patch {handle.kind} {handle.name!r}: {err}. Use force "
                    "to recreate the resource"
                ) from err
            log.info("Patch of %s rejected, recreating it: %s", handle, err)
            self._recreate_resource(handle)
            return

        handle.refresh(patched)

    def _recreate_resource(self, handle: ResourceHandle):
        """Delete and recreate a resource in two separate phases. Between the
        phases the resource is absent on the server.
        """
        try:
            self._delete_resource(handle)
        except NotFoundError:
            log.debug2("%s was already absent before recreation", handle)
        except KReconcileError as err:
            raise ClusterError(f"failed to delete {handle}: {err}") from err
        log.debug("Deleted %s, recreating it from its declaration", handle)

        try:
            self._create_resource(handle)
        except KReconcileError as err:
            raise ClusterError(f"failed to recreate {handle}: {err}") from err
