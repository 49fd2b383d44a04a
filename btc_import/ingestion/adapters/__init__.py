from .api_adapter import APIAdapter
from .base_adapter import AdapterConfig, FetchResult
from .source_api import SourceAPIClient
from .target_api import TargetAPIClient

__all__ = [
    "APIAdapter",
    "AdapterConfig",
    "FetchResult",
    "SourceAPIClient",
    "TargetAPIClient",
]
