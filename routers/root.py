"""Root endpoint and API information."""
from fastapi import APIRouter

from version import __version__

router = APIRouter()


@router.api_route("/", methods=["GET", "OPTIONS"])
async def root():
    """Root endpoint that returns API information"""
    return {
        "name": "WeatherHist API",
        "version": __version__,
        "description": "Weather readings per location, kept current against a remote provider",
        "v1_endpoints": {
            "locations": [
                "/v1/locations",
                "/v1/locations/{name}"
            ],
            "weather": [
                "/v1/weather/current?name={name}",
                "/v1/weather/latest?name={name}",
                "/v1/weather/year/{year}?name={name}",
                "/v1/weather/month/{month}?name={name}",
                "/v1/weather/week/{week}?name={name}",
                "/v1/weather/past?days={days}&name={name}",
                "/v1/weather/span?name={name}&start={start}&end={end}",
                "/v1/weather/stats?name={name}&start={start}&end={end}"
            ],
            "admin": [
                "/v1/init"
            ]
        },
        "other_endpoints": [
            "/health",
            "/health/detailed"
        ]
    }
