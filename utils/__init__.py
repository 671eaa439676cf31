# Utils package - scheduling, billing, logging and configuration helpers
from .billing import Tariff, calculate_trip_charges, summarize_lines
from .config_validator import ConfigValidationError, validate_billing_config

__all__ = [
    'Tariff',
    'calculate_trip_charges',
    'summarize_lines',
    'ConfigValidationError',
    'validate_billing_config',
]
