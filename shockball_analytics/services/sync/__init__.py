"""Sync layer: orchestrator and persistence gateway."""
from shockball_analytics.services.sync.orchestrator import SyncOrchestrator
from shockball_analytics.services.sync.persistence import PersistenceGateway

__all__ = ["SyncOrchestrator", "PersistenceGateway"]
