"""Client-side polling and extremes reconciliation.

Re-exports the public API so consumers can import directly:
    from Bullion_Rate.client import LivePriceClient, PollScheduler
"""

from Bullion_Rate.client.live_price import LivePriceClient
from Bullion_Rate.client.reconciliation import ClientExtremesStore, ExtremesReconciler
from Bullion_Rate.client.scheduler import PollScheduler

__all__ = [
    "ClientExtremesStore",
    "ExtremesReconciler",
    "LivePriceClient",
    "PollScheduler",
]
