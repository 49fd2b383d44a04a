from .cache import ResolutionCache
from .categories import map_to_canonical_category
from .defaults import DefaultLocation, ResolutionDefaults, load_resolution_defaults
from .resolver import EntityResolver, Resolution, ResolutionStatus, ResolvedEntities

__all__ = [
    "DefaultLocation",
    "EntityResolver",
    "Resolution",
    "ResolutionCache",
    "ResolutionDefaults",
    "ResolutionStatus",
    "ResolvedEntities",
    "load_resolution_defaults",
    "map_to_canonical_category",
]
