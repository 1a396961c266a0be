"""Pydantic schemas package."""

from bizcontacts.schemas.discovery import (
    CompletenessStats,
    CostEstimates,
    DiscoveryRequest,
    DiscoveryRunRead,
    DiscoveryStats,
    ExportEstimate,
    RefreshEstimate,
    RefreshEstimates,
)

__all__ = [
    "CompletenessStats",
    "CostEstimates",
    "DiscoveryRequest",
    "DiscoveryRunRead",
    "DiscoveryStats",
    "ExportEstimate",
    "RefreshEstimate",
    "RefreshEstimates",
]
