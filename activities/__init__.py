"""Activity definitions module."""

from activities.sync import SyncActivities, RunSalesSyncInput, RunSalesSyncOutput

__all__ = ["SyncActivities", "RunSalesSyncInput", "RunSalesSyncOutput"]
