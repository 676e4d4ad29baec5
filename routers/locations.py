"""Location registry endpoints."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from ingestion import IngestionDeduplicator
from models import LocationItem, LocationListResponse, RegisterLocationsResponse
from routers.dependencies import get_deduplicator, get_store
from utils.readings import location_to_dict
from utils.record_store import RecordStore
from utils.sanitization import sanitize_for_logging

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/v1/locations", response_model=LocationListResponse)
async def list_locations(store: RecordStore = Depends(get_store)):
    """All stored locations, ordered by name."""
    locations = await store.all_locations()
    return LocationListResponse(
        locations=[LocationItem(**location_to_dict(loc)) for loc in locations],
        count=len(locations),
    )


@router.post("/v1/locations", response_model=RegisterLocationsResponse)
async def register_locations(
    timeout: Optional[float] = Query(None, gt=0, le=300, description="Provider timeout in seconds"),
    deduplicator: IngestionDeduplicator = Depends(get_deduplicator),
):
    """Register every provider location the store does not know yet."""
    registered = await deduplicator.register_all_locations(timeout=timeout)
    return RegisterLocationsResponse(
        registered=[LocationItem(**location_to_dict(loc)) for loc in registered],
        count=len(registered),
    )


@router.get("/v1/locations/{name}", response_model=LocationItem)
async def get_location(name: str, store: RecordStore = Depends(get_store)):
    """A single stored location by its exact name."""
    location = await store.location_by_name(name)
    if location is None:
        logger.info(f"Location not found: {sanitize_for_logging(name)}")
        raise HTTPException(status_code=404, detail=f"Location '{name}' not found")
    return LocationItem(**location_to_dict(location))
