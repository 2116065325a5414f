# path: route-enrichment-api/app/api/routes/routes.py

from __future__ import annotations

from typing import Optional
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from app.core.config import EnrichmentConfig
from app.models.route_models import EnrichRouteRequest, EnrichedRoute
from app.services.route_enricher import RouteEnricher
from app.stores.base import SpatialStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/routes", tags=["routes"])


class HealthResponse(BaseModel):
    status: str
    spatial_store: Optional[str] = None


def get_spatial_store(request: Request) -> SpatialStore:
    store = getattr(request.app.state, "spatial_store", None)
    if store is None:
        raise HTTPException(status_code=503, detail="No spatial data store configured")
    return store


def get_enrichment_config(request: Request) -> EnrichmentConfig:
    return getattr(request.app.state, "enrichment_config", None) or EnrichmentConfig()


@router.get("/health", response_model=HealthResponse)
def health(request: Request) -> HealthResponse:
    store = getattr(request.app.state, "spatial_store", None)
    return HealthResponse(
        status="ok" if store is not None else "degraded",
        spatial_store=type(store).__name__ if store is not None else None,
    )


@router.post("/enrich", response_model=EnrichedRoute)
def enrich_route(
    body: EnrichRouteRequest,
    store: SpatialStore = Depends(get_spatial_store),
    config: EnrichmentConfig = Depends(get_enrichment_config),
) -> EnrichedRoute:
    # Enriched payload goes back to the caller; persistence is the caller's job.
    try:
        return RouteEnricher(store, config).enrich(
            body.polyline, body.instructions, route_id=body.route_id
        )
    except ValueError as e:
        logger.error(f"Route enrichment rejected: {e}")
        raise HTTPException(status_code=400, detail=str(e))
