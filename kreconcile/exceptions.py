"""
This module implements custom exceptions
"""

## Base Error ##################################################################


class KReconcileError(Exception):
    """Base class for all kreconcile exceptions"""

    def __init__(self, message: str, is_fatal_error: bool):
        """Construct with a flag indicating whether this is a fatal error. This
        will be a static property of all children.
        """
        super().__init__(message)
        self._is_fatal_error = is_fatal_error

    @property
    def is_fatal_error(self):
        """Property indicating whether or not this error should be considered
        unrecoverable without a change in the declared resources
        """
        return self._is_fatal_error


## Fatal Errors ################################################################


class KReconcileFatalError(KReconcileError):
    """A KReconcileFatalError is one that indicates an unexpected, and likely
    unrecoverable, failure during a reconciliation.
    """

    def __init__(self, message: str = ""):
        super().__init__(message=message, is_fatal_error=True)


class ClusterError(KReconcileFatalError):
    """Exception caused when a cluster operation fails in an unexpected way"""


class UpdateAbortedError(ClusterError):
    """Exception caused when an update stops before visiting every desired
    resource. The partial result built before the failure is attached.
    """

    def __init__(self, message: str = "", result=None):
        self.result = result
        super().__init__(message)


class ConversionError(KReconcileFatalError):
    """Exception caused when an object cannot be converted to its versioned
    wire form
    """


class NotRegisteredError(ConversionError):
    """Exception caused when converting an object whose kind is not known to
    the scheme
    """


class StaleStateError(KReconcileFatalError):
    """Exception caused when the desired resources reference an existing
    resource that was never recorded as previously applied
    """

    def __init__(self, message: str = "", result=None):
        self.result = result
        super().__init__(message)


class AggregateError(KReconcileFatalError):
    """Exception holding several per-resource failures joined into a single
    message. The partial result built before the failure is attached.
    """

    def __init__(self, message: str = "", result=None, errors=None):
        self.result = result
        self.errors = errors or []
        super().__init__(message)


class WatchStreamError(KReconcileFatalError):
    """Exception caused when the server emits an error event on a watch"""


class ResourceFailedError(KReconcileFatalError):
    """Exception caused when a watched resource reaches a failed milestone
    (a failed Job or Pod)
    """

    def __init__(self, message: str = "", reason: str = ""):
        self.reason = reason
        super().__init__(message)


class ManifestError(KReconcileFatalError):
    """Exception caused when a manifest cannot be parsed"""


## Expected Errors #############################################################


class KReconcileExpectedError(KReconcileError):
    """A KReconcileExpectedError is one that indicates an expected failure
    condition that may resolve on a subsequent attempt.
    """

    def __init__(self, message: str = ""):
        super().__init__(message=message, is_fatal_error=False)


class EmptyInputError(KReconcileExpectedError):
    """Exception caused when an operation receives no resources"""


class NotFoundError(KReconcileExpectedError):
    """Exception caused when a resource is absent on the server"""


class ResourceConflictError(KReconcileExpectedError):
    """Exception caused when the server rejects a write because the
    resourceVersion is out of date
    """


class PatchConflictError(KReconcileExpectedError):
    """Exception caused when the server rejects a patch and a forced
    recreation was not requested
    """


class WaitTimeoutError(KReconcileExpectedError):
    """Exception caused when a readiness wait exceeds its deadline"""


## Assertions ##################################################################


def assert_cluster(condition: bool, message: str = ""):
    """Replacement for assert() which will throw a ClusterError. This should
    be used when an operation in the cluster (such as resolving a resource
    kind) must succeed.
    """
    if not condition:
        raise ClusterError(message)
