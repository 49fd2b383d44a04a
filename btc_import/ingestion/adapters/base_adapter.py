"""
Base adapter types.

Shared configuration and fetch-result containers for the source and target
API clients.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


@dataclass
class FetchResult:
    """
    Result of a source fetch operation.

    Keeps the untouched response body next to the extracted records so the
    raw payload can be persisted as a run artifact.
    """

    success: bool
    raw_data: List[Dict[str, Any]] = field(default_factory=list)
    raw_payload: Dict[str, Any] = field(default_factory=dict)
    total_fetched: int = 0
    errors: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    fetch_started_at: Optional[datetime] = None
    fetch_ended_at: Optional[datetime] = None

    @property
    def duration_seconds(self) -> float:
        """Calculate fetch duration."""
        if self.fetch_started_at and self.fetch_ended_at:
            return (self.fetch_ended_at - self.fetch_started_at).total_seconds()
        return 0.0


@dataclass
class AdapterConfig:
    """
    Base configuration for API adapters.

    Extended by the source and target clients.
    """

    source_id: str
    base_url: str = ""
    api_key: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)
    request_timeout: float = 30.0
