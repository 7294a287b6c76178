from __future__ import annotations

from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field, PositiveInt


class TemplateDescription(BaseModel):
    """One entry of the template catalogue."""

    id: str = Field(..., description="Template identifier, e.g. `3-main-left`.")
    min_photos: int = Field(..., description="Fewest photos the template accepts.")
    region_count: int | None = Field(
        default=None,
        description="Number of regions, or null when it depends on the surface.",
    )
    landscape: bool = Field(..., description="Designed for landscape surfaces.")
    portrait: bool = Field(..., description="Designed for portrait surfaces.")
    description: str = Field(default="", description="Human readable summary.")


class TemplateListResponse(BaseModel):
    templates: List[TemplateDescription] = Field(..., description="Concrete templates.")
    pseudo_templates: List[str] = Field(
        ...,
        description="Identifiers resolved at layout time (`dynamic`, `random`).",
    )


class RegionRequest(BaseModel):
    """Request body for previewing the regions of a template."""

    model_config = ConfigDict(extra="forbid")

    template: str = Field(..., description="Template identifier.")
    width: PositiveInt = Field(..., description="Surface width in pixels.")
    height: PositiveInt = Field(..., description="Surface height in pixels.")
    seed: int | None = Field(
        default=None,
        description="Seed for templates with random placement (smart-3, scattered).",
    )
    photo_count: PositiveInt | None = Field(
        default=None,
        description="Requested number of pieces for the scattered collage.",
    )


class RegionResponse(BaseModel):
    left: float
    top: float
    right: float
    bottom: float
    aspect_ratio: float = Field(..., description="Expected aspect ratio of the region.")
    rotation: float = Field(default=0.0, description="Rotation in degrees, counter-clockwise.")


class RegionListResponse(BaseModel):
    template: str = Field(..., description="Template the regions were generated for.")
    width: int
    height: int
    regions: List[RegionResponse] = Field(..., description="Regions in drawing order.")


class PoolStats(BaseModel):
    """Snapshot of the pixel buffer pool."""

    buckets: int
    pooled_buffers: int
    in_use_buffers: int
    pooled_megabytes: float
    allocations: int
    reuses: int
    discards: int
    rejected_releases: int
    max_per_bucket: int
    sizes: Dict[str, int] = Field(default_factory=dict, description="Pooled buffers per size.")
