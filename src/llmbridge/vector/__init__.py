# src/llmbridge/vector/__init__.py
"""
Vector search and sync for llmbridge.
"""

from .service import VectorService
from .source import GrafanaDashboardSource, SourceMetadataProvider
from .sync import (SyncEngine, SyncReport, canonical_json, fnv1a_64,
                   interval_ticker, project_dashboard)

__all__ = [
    "GrafanaDashboardSource",
    "SourceMetadataProvider",
    "SyncEngine",
    "SyncReport",
    "VectorService",
    "canonical_json",
    "fnv1a_64",
    "interval_ticker",
    "project_dashboard",
]
