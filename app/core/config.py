# path: route-enrichment-api/app/core/config.py

from __future__ import annotations

from typing import Mapping, Optional
import os

from pydantic import BaseModel, ConfigDict, Field


ENV_PREFIX = "ROUTE_ENRICH_"


class EnrichmentConfig(BaseModel):
    """
    Tuning knobs for one enrichment pass.

    Passed explicitly to the orchestrator and each stage; nothing below the
    API layer reads the environment.
    """

    model_config = ConfigDict(frozen=True)

    # Speed resolution
    snap_radius_m: float = Field(default=120.0, gt=0)
    widened_snap_radius_m: float = Field(default=500.0, gt=0)
    widen_snap_max_dist_m: float = Field(default=15.0, ge=0)
    nearby_speed_radius_m: Optional[float] = Field(default=None, gt=0)

    # Point controls (signals / stop / give way)
    control_radius_m: float = Field(default=5.0, gt=0)
    control_limit: int = Field(default=3, ge=1)
    traffic_light_radius_m: float = Field(default=300.0, gt=0)
    traffic_light_limit: int = Field(default=8, ge=1)

    # Zebra crossings
    zebra_window: int = Field(default=25, ge=0)
    zebra_densify_step_m: float = Field(default=10.0, gt=0)
    zebra_search_radius_m: float = Field(default=60.0, gt=0)
    zebra_limit: int = Field(default=8, ge=1)
    zebra_accept_m: float = Field(default=40.0, ge=0)
    zebra_tag_m: float = Field(default=30.0, ge=0)

    # Curvature
    bend_window: int = Field(default=6, ge=1)
    bend_sample_step: int = Field(default=2, ge=1)
    angle_window: int = Field(default=2, ge=1)

    # Instruction placement along the polyline
    edge_offset_points: int = Field(default=10, ge=0)
    edge_offset_min_points: int = Field(default=30, ge=1)

    max_workers: int = Field(default=4, ge=1)

    @property
    def nearby_radius_m(self) -> float:
        return self.nearby_speed_radius_m or self.snap_radius_m

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "EnrichmentConfig":
        env = os.environ if environ is None else environ
        values = {}
        for name in cls.model_fields:
            raw = env.get(ENV_PREFIX + name.upper())
            if raw is not None and raw != "":
                values[name] = raw
        return cls(**values)
