"""One-time store initialization endpoint."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from ingestion import IngestionDeduplicator
from models import InitResponse
from routers.dependencies import get_deduplicator

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/v1/init", response_model=InitResponse)
async def initialize_store(
    year: Optional[int] = Query(None, ge=1, description="Year to cover; defaults to the current year"),
    deduplicator: IngestionDeduplicator = Depends(get_deduplicator),
):
    """Register all provider locations and cover the year, once."""
    already_done = await deduplicator.initialize(year=year)
    if already_done:
        raise HTTPException(status_code=409, detail="Record store is already initialized")
    return InitResponse(status="initialized", message="Locations registered and year coverage complete")
