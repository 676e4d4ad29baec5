"""Pydantic models for API requests and responses."""
from datetime import datetime
from pydantic import BaseModel, Field
from typing import List, Optional, Dict, Union, Literal


class LocationItem(BaseModel):
    """A tracked location."""
    id: int = Field(..., description="Store identifier")
    name: str = Field(..., description="Display name (unique, case-sensitive)")
    zip: int = Field(..., description="Numeric site code")
    country: str = Field(..., description="Country code")


class LocationListResponse(BaseModel):
    """All locations known to the store."""
    locations: List[LocationItem] = Field(default_factory=list)
    count: int = Field(..., description="Number of locations")


class RegisterLocationsResponse(BaseModel):
    """Result of the provider location discovery bootstrap."""
    registered: List[LocationItem] = Field(default_factory=list, description="Locations inserted by this call")
    count: int = Field(..., description="Number of locations inserted")


class ReadingItem(BaseModel):
    """One timestamped observation."""
    location_id: Optional[int] = Field(None, description="Owning location id")
    timestamp: datetime = Field(..., description="Observation time, second precision")
    summary: str = Field(..., description="Weather summary token")
    description: str = Field(..., description="Free-text description")
    temperature: float = Field(..., description="Temperature in °C")
    pressure: float = Field(..., description="Pressure in hPa")
    humidity: float = Field(..., description="Relative humidity in %")
    wind_speed: float = Field(..., description="Wind speed in m/s")
    wind_direction: float = Field(..., description="Wind direction in degrees")


class SeriesResponse(BaseModel):
    """An ordered series of readings; empty when the location or window is unknown or invalid."""
    location: Optional[str] = Field(None, description="Location name, null for all-location queries")
    window: str = Field(..., description="Window descriptor (e.g. 'year:2024', 'past:7')")
    readings: List[ReadingItem] = Field(default_factory=list, description="Readings ascending by timestamp")
    count: int = Field(..., description="Number of readings")


class ReconcileResponse(BaseModel):
    """Outcome of a freshness reconciliation."""
    location: str = Field(..., description="Location name")
    action: Literal["inserted", "unchanged", "appended", "backfilled"] = Field(..., description="What the reconciler did")
    reading: Optional[ReadingItem] = Field(None, description="Current reading after reconciliation")
    inserted: int = Field(..., ge=0, description="Number of readings written")


class CoverageResponse(BaseModel):
    """Outcome of year coverage for one or more locations."""
    year: int = Field(..., description="Year covered")
    inserted: Dict[str, int] = Field(default_factory=dict, description="Readings inserted per location")


class MetricSummary(BaseModel):
    """Mean, minimum and maximum of one metric."""
    mean: float
    minimum: float
    maximum: float


class StatisticsResponse(BaseModel):
    """Aggregate statistics over a time span."""
    location: str = Field(..., description="Location name")
    start: datetime
    end: datetime
    count: int = Field(..., description="Number of readings aggregated")
    temperature: Optional[MetricSummary] = None
    pressure: Optional[MetricSummary] = None
    humidity: Optional[MetricSummary] = None


class InitResponse(BaseModel):
    """Result of the one-time store initialization."""
    status: str = Field(..., description="Initialization status")
    message: str = Field(..., description="Response message")


# Error Response Model
class ErrorResponse(BaseModel):
    """Standardized error response format for consistent API error handling."""
    error: str = Field(..., description="Error type or code")
    message: str = Field(..., description="Human-readable error message")
    code: Optional[str] = Field(None, description="Error code for programmatic handling")
    details: Optional[Union[List[Dict], Dict, str]] = Field(None, description="Additional error details")
    path: Optional[str] = Field(None, description="Request path where error occurred")
    method: Optional[str] = Field(None, description="HTTP method")
    request_id: Optional[str] = Field(None, description="Request ID for tracing")
    timestamp: str = Field(default_factory=lambda: datetime.now().isoformat(),
                          description="Error timestamp")
