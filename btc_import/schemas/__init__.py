from .event import GeoPoint, GeographyInfo, SourceEvent, TargetEvent

__all__ = ["GeoPoint", "GeographyInfo", "SourceEvent", "TargetEvent"]
