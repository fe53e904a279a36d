"""
The Transport is the abstraction in charge of interacting with the kubernetes
cluster to look up, create, patch, delete, and watch resources.
"""

# Local
from .base import TransportBase
from .dry_run_transport import DryRunTransport
from .kube_event import KubeEventType, KubeWatchEvent
from .openshift_transport import OpenshiftTransport
