"""
Package exports
"""

# Local
from . import config, manifest, status, transport
from .client import Client
from .exceptions import assert_cluster
from .patch import PatchPlan, PatchType, compute_patch
from .reconcile import Reconciler
from .resource import ReconcileResult, ResourceHandle, ResourceList
from .scheme import Scheme
from .wait import PodPhase, Waiter, WatchOutcome, WatchResult
