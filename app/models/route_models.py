# path: route-enrichment-api/app/models/route_models.py

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


RouteVersion = Literal["1.0"]


class SpeedSource(str, Enum):
    OSM = "osm"
    OSM_NEARBY = "osm_nearby"
    OSM_NSL = "osm_nsl"
    INFERRED_ROAD_CLASS = "inferred_roadclass"
    NONE = "none"


class ControlKind(str, Enum):
    TRAFFIC_SIGNALS = "traffic_signals"
    STOP = "stop"
    GIVE_WAY = "give_way"


class ReliabilityLabel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Coordinate(BaseModel):
    # Non-numeric and NaN/inf values fail validation; out-of-range values do not.
    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    lat: float
    lon: float

    @property
    def in_range(self) -> bool:
        return -90.0 <= self.lat <= 90.0 and -180.0 <= self.lon <= 180.0


class RoadMatch(BaseModel):
    model_config = ConfigDict(frozen=True)

    feature_id: int
    road_class: Optional[str] = None
    name: Optional[str] = None
    distance_m: float = Field(ge=0)
    raw_speed_tag: Optional[str] = None
    speed_tags: Dict[str, str] = Field(default_factory=dict)


class SpeedEstimate(BaseModel):
    model_config = ConfigDict(frozen=True)

    mph: Optional[int] = None
    source: SpeedSource = SpeedSource.NONE
    confidence: float = Field(default=0.0, ge=0, le=1)
    raw_tag: Optional[str] = None
    snapped: Optional[RoadMatch] = None
    matched: Optional[RoadMatch] = None


class PointHit(BaseModel):
    model_config = ConfigDict(frozen=True)

    feature_id: int
    kind: str
    distance_m: float = Field(ge=0)


class ControlHit(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: ControlKind
    distance_m: float = Field(ge=0)
    feature_id: int


class GeoJSONPoint(BaseModel):
    type: Literal["Point"] = "Point"
    coordinates: List[float]  # (lon, lat)


class InstructionIn(BaseModel):
    # Unknown caller keys are carried through to the enriched output.
    model_config = ConfigDict(extra="allow")

    direction: str = ""
    action_type: Optional[str] = None

    @field_validator("direction", mode="before")
    @classmethod
    def none_direction_is_empty(cls, v: Any):
        return "" if v is None else v


class EnrichedInstruction(InstructionIn):
    model_config = ConfigDict(extra="allow", frozen=True)

    lat: Optional[float] = None
    lon: Optional[float] = None
    location: Optional[GeoJSONPoint] = None
    polyline_index: Optional[int] = None

    speed_mph: Optional[int] = None
    speed_limit_mph_osm: Optional[int] = None
    speed_limit_mph_final: Optional[int] = None
    speed_source: SpeedSource = SpeedSource.NONE
    speed_limit_confidence: float = Field(default=0.0, ge=0, le=1)
    snapped_to_road: bool = False
    snap_distance_m: Optional[float] = None
    road_class: Optional[str] = None
    road_name: Optional[str] = None

    advisory_speed_mph: Optional[int] = None
    turn_angle_deg: Optional[float] = None
    bend_radius_m: Optional[float] = None
    speed_drop_warning: bool = False

    hazard_tags: List[str] = Field(default_factory=list)
    common_fault_risk: List[str] = Field(default_factory=list)
    junction_type: Optional[str] = None
    decision_point: bool = False
    hazard_score: int = Field(default=0, ge=0)
    must_stop: bool = False
    stop_line_expected: bool = False

    roundabout_exit: Optional[int] = None
    roundabout_exit_number_inferred: Optional[bool] = None
    roundabout_exit_confidence: Optional[float] = None

    nearest_control: Optional[ControlHit] = None
    control_hits: List[ControlHit] = Field(default_factory=list)
    zebra_crossing_dist_m: Optional[float] = None
    zebra_crossing_confidence: Optional[float] = None

    step_reliability_score: float = Field(default=0.0, ge=0, le=1)
    step_reliability_label: ReliabilityLabel = ReliabilityLabel.LOW


class BBoxWGS84(BaseModel):
    min_lat: float
    min_lon: float
    max_lat: float
    max_lon: float


class EnrichRouteRequest(BaseModel):
    route_version: RouteVersion = "1.0"
    route_id: Optional[str] = None
    polyline: List[Coordinate] = Field(default_factory=list)
    instructions: List[InstructionIn] = Field(default_factory=list)


class EnrichedRoute(BaseModel):
    route_version: RouteVersion = "1.0"
    route_id: str
    polyline: List[Coordinate]
    instructions: List[EnrichedInstruction]
    bbox_wgs84: Optional[BBoxWGS84] = None
    total_distance_m: float = Field(default=0.0, ge=0)
    source_hash: Optional[str] = None
    enriched_at_utc: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
