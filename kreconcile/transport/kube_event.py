"""
Helper module to define shared types related to Kube Events
"""

# Standard
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class KubeEventType(Enum):
    """Enum for all possible kubernetes event types"""

    DELETED = "DELETED"
    MODIFIED = "MODIFIED"
    ADDED = "ADDED"
    ERROR = "ERROR"


@dataclass
class KubeWatchEvent:
    """DataClass containing the type, object, and timestamp of a
    particular event. For ERROR events the object is the Status sent by the
    server.
    """

    type: KubeEventType
    object: dict
    timestamp: datetime = field(default_factory=datetime.now)
