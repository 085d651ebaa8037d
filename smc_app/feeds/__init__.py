"""
External collaborators: market data provider and broker facade.

Only the interfaces live here plus a wrapper that gives every outbound call
a bounded timeout and a fixed retry budget.
"""

from .base import (
    BrokerFacade,
    FeedError,
    MarketDataProvider,
    PermanentFeedError,
    ResilientFeed,
    call_with_retry,
)

__all__ = [
    "BrokerFacade",
    "FeedError",
    "MarketDataProvider",
    "PermanentFeedError",
    "ResilientFeed",
    "call_with_retry",
]
