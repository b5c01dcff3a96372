"""posqueue package.

Offline order queue for point-of-sale order entry. Orders created while
offline, or rejected by the backend, are stored locally and delivered exactly
once with bounded, exponentially backed-off retries, automatically on
reconnect or on demand.

Main components:
- PosOrderService: Presentation-facing facade (order entry + queue control)
- OfflineQueue: Single-flight bulk processing and per-order submit step
- OrderStore: Durable pending orders, order history and app settings
- NetworkMonitor: Polling connectivity monitor with change suppression
- OrderApiClient: Async HTTP client for the order backend
- PosSettings: Configuration management with environment variable support
"""

from importlib.metadata import version

__version__ = version("posqueue")


from posqueue.api import OrderApiClient
from posqueue.models import PosModels
from posqueue.network import HttpConnectivityProbe, NetworkMonitor
from posqueue.offline_queue import OfflineQueue
from posqueue.scheduler import RetryScheduler
from posqueue.service import PosOrderService
from posqueue.settings import PosSettings
from posqueue.storage import KeyValueBackend, OrderStore

__all__ = [
    "HttpConnectivityProbe",
    "KeyValueBackend",
    "NetworkMonitor",
    "OfflineQueue",
    "OrderApiClient",
    "OrderStore",
    "PosModels",
    "PosOrderService",
    "PosSettings",
    "RetryScheduler",
    "__version__",
]
