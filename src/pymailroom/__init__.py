"""pymailroom - Shared mail room status board with decaying freshness."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pymailroom")
except PackageNotFoundError:
    __version__ = "0+local"
from pymailroom._constants import FRESHNESS_WINDOW
from pymailroom.adapter import InMemoryStoreAdapter, RemoteStoreAdapter, StoreAdapter, Subscription
from pymailroom.client import MailroomClient, StatusBoard
from pymailroom.config import MailroomConfig
from pymailroom.exceptions import (
    MailroomConfigError,
    MailroomError,
    MailroomLoadError,
    MailroomSubscriptionError,
    MailroomTransportError,
    MailroomWriteError,
    UnknownLocationError,
)
from pymailroom.models import EffectiveView, LocationRecord, MailroomStatus
from pymailroom.registry import DEFAULT_REGISTRY, LocationRegistry
from pymailroom.state.events import ChangeEvent, ChangeKind
from pymailroom.state.policy import effective_status, is_stale

__all__ = [
    "__version__",
    "ChangeEvent",
    "ChangeKind",
    "DEFAULT_REGISTRY",
    "EffectiveView",
    "FRESHNESS_WINDOW",
    "InMemoryStoreAdapter",
    "LocationRecord",
    "LocationRegistry",
    "MailroomClient",
    "MailroomConfig",
    "MailroomConfigError",
    "MailroomError",
    "MailroomLoadError",
    "MailroomStatus",
    "MailroomSubscriptionError",
    "MailroomTransportError",
    "MailroomWriteError",
    "RemoteStoreAdapter",
    "StatusBoard",
    "StoreAdapter",
    "Subscription",
    "UnknownLocationError",
    "effective_status",
    "is_stale",
]
