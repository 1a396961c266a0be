"""Pydantic schemas for discovery requests, stats and cost estimates."""

from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from bizcontacts.models.job_status import RunStatus


class DiscoveryRequest(BaseModel):
    """What to discover. Location precedence: municipality, prefecture, city/coordinates.

    source picks the discovery source explicitly; by default registry ids
    select the registry and a city selects the geo-grid search. An industry
    group expands to the activity codes and keywords of its industries when
    the run starts.
    """

    user_id: str
    dataset_id: UUID | None = None
    source: Literal["registry", "geo_grid", "listing"] | None = None
    industry_group_id: UUID | None = None
    # False forces external queries even when matching businesses are stored
    reuse_local: bool = True

    municipality_ids: list[int] = Field(default_factory=list)
    prefecture_id: int | None = None
    activity_ids: list[int] = Field(default_factory=list)

    # Geo-grid variant
    city_id: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    radius_km: float | None = None
    keywords: list[str] = Field(default_factory=list)

    # Directory listing variant: free-text location for the search (defaults to city_id)
    location_name: str | None = None

    @model_validator(mode="after")
    def _has_location(self) -> "DiscoveryRequest":
        if not self.municipality_ids and self.prefecture_id is None and self.city_id is None:
            raise ValueError("One of municipality_ids, prefecture_id or city_id is required")
        if self.source == "registry" and not self.uses_registry:
            raise ValueError("Registry discovery needs municipality_ids or prefecture_id")
        if self.source in ("geo_grid", "listing") and self.city_id is None:
            raise ValueError(f"{self.source} discovery needs city_id")
        return self

    @property
    def uses_registry(self) -> bool:
        return bool(self.municipality_ids) or self.prefecture_id is not None

    @property
    def source_name(self) -> str:
        if self.source:
            return self.source
        return "registry" if self.uses_registry else "geo_grid"

    @property
    def location_key(self) -> str:
        if self.municipality_ids:
            return "municipality:" + ",".join(str(m) for m in sorted(self.municipality_ids))
        if self.prefecture_id is not None:
            return f"prefecture:{self.prefecture_id}"
        return f"city:{self.city_id}"

    @property
    def industry_key(self) -> str:
        if self.industry_group_id:
            return f"group:{self.industry_group_id}"
        if self.activity_ids:
            return "activity:" + ",".join(str(a) for a in sorted(self.activity_ids))
        if self.keywords:
            return "keywords:" + ",".join(sorted(k.strip().lower() for k in self.keywords))
        return "all"


class DiscoveryStats(BaseModel):
    businesses_found: int = 0
    businesses_created: int = 0
    businesses_updated: int = 0
    businesses_linked: int = 0
    errors: list[str] = Field(default_factory=list)
    searches_executed: int = 0
    stopped_early: bool = False
    reused_local: bool = False


class CompletenessStats(BaseModel):
    with_website_percent: float = 0
    with_email_percent: float = 0
    with_phone_percent: float = 0


class ExportEstimate(BaseModel):
    size: int
    price_eur: float


class RefreshEstimate(BaseModel):
    price_per_business_eur: float
    estimated_total_eur: float


class RefreshEstimates(BaseModel):
    incomplete_only: RefreshEstimate
    full_refresh: RefreshEstimate


class CostEstimates(BaseModel):
    """Descriptive sizing stored on discovery_runs.cost_estimates. Not billing."""

    estimated_businesses: int
    completeness: CompletenessStats
    export_estimates: list[ExportEstimate]
    refresh_estimates: RefreshEstimates


class DiscoveryRunRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    dataset_id: UUID
    user_id: str | None = None
    industry_group_id: UUID | None = None
    status: RunStatus
    created_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error_message: str | None = None
    cost_estimates: dict | None = None
