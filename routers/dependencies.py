"""Shared dependencies for routers.

The store, provider and engines are attached to ``app.state`` by main.py
during startup (tests attach doubles the same way).
"""
from fastapi import Request

from ingestion import IngestionDeduplicator
from reconciler import FreshnessReconciler
from temporal_query import TemporalQueryEngine
from utils.record_store import RecordStore
from utils.weather_provider import WeatherProvider


def _state(request: Request, name: str):
    value = getattr(request.app.state, name, None)
    if value is None:
        raise RuntimeError(f"{name} not initialized. Ensure app is properly started.")
    return value


def get_store(request: Request) -> RecordStore:
    """Dependency to get the record store."""
    return _state(request, "store")


def get_provider(request: Request) -> WeatherProvider:
    """Dependency to get the weather provider client."""
    return _state(request, "provider")


def get_reconciler(request: Request) -> FreshnessReconciler:
    """Dependency to get the freshness reconciler."""
    return _state(request, "reconciler")


def get_deduplicator(request: Request) -> IngestionDeduplicator:
    """Dependency to get the ingestion deduplicator."""
    return _state(request, "deduplicator")


def get_query_engine(request: Request) -> TemporalQueryEngine:
    """Dependency to get the temporal query engine."""
    return _state(request, "query_engine")
