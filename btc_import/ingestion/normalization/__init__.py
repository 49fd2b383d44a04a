from .event_mapper import ValidationResult, map_to_target_event, validate_target_event

__all__ = ["ValidationResult", "map_to_target_event", "validate_target_event"]
