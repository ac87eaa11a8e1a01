"""Converters from source models to layout snapshots."""

from .hierarchy_projector import (
    AGGREGATE_SUFFIX,
    HierarchyProjector,
    ViewMode,
    aggregate_id,
    external_id,
    paths_highlighter,
    project,
    symbol_id,
)

__all__ = [
    "AGGREGATE_SUFFIX",
    "HierarchyProjector",
    "ViewMode",
    "aggregate_id",
    "external_id",
    "paths_highlighter",
    "project",
    "symbol_id",
]
