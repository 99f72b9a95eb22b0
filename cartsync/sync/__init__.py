"""Sync package: merge protocol and the coordinator facade."""
from .coordinator import SyncCoordinator, create_coordinator
from .merge import MergeProtocol, MergeReport

__all__ = [
    "MergeProtocol",
    "MergeReport",
    "SyncCoordinator",
    "create_coordinator",
]
