"""
modules/validation package — structural guards before reconciliation or storage.
"""
from modules.validation.ingestion_validator import (
    ValidationResult,
    validate_coordinate,
    validate_stop,
    validate_day_number,
    validate_plan,
    filter_valid,
)

__all__ = [
    "ValidationResult",
    "validate_coordinate",
    "validate_stop",
    "validate_day_number",
    "validate_plan",
    "filter_valid",
]
