"""
Configuration validation for billing and trip lifecycle settings
Ensures tariff values loaded from the environment are usable before the
first invoice is generated
"""
import logging
import re
from typing import Dict, List, Tuple, Any

logger = logging.getLogger(__name__)

class ConfigValidationError(Exception):
    """Raised when critical configuration is missing or invalid"""

    def __init__(self, issues):
        super().__init__("; ".join(issues))
        self.issues = list(issues)

RATE_KEYS = {
    'BILLING_BASE_RATE_24FT': '24FT base rate',
    'BILLING_BASE_RATE_DEFAULT': 'Default base rate',
    'BILLING_PALLET_RATE': 'Pallet rate',
    'BILLING_HELPER_FEE': 'Helper fee',
    'BILLING_POD_FEE': 'POD handling fee',
}

def validate_billing_config(config) -> Tuple[bool, List[str]]:
    """
    Validate billing tariff configuration.

    Returns:
        tuple: (is_valid: bool, issues: List[str])
    """
    issues = []

    tax_rate = config.get('BILLING_TAX_RATE')
    if tax_rate is None:
        issues.append("Missing tax rate (BILLING_TAX_RATE)")
    else:
        try:
            tax_rate = float(tax_rate)
            if not 0 <= tax_rate < 1:
                issues.append("BILLING_TAX_RATE must be a fraction between 0 and 1 (e.g. 0.09)")
        except (TypeError, ValueError):
            issues.append(f"BILLING_TAX_RATE is not a number: {tax_rate!r}")

    for key, description in RATE_KEYS.items():
        value = config.get(key)
        if value is None:
            issues.append(f"Missing {description} ({key})")
            continue
        try:
            if float(value) < 0:
                issues.append(f"{description} ({key}) cannot be negative")
        except (TypeError, ValueError):
            issues.append(f"{description} ({key}) is not a number: {value!r}")

    currency = config.get('BILLING_CURRENCY') or ''
    if not re.fullmatch(r'[A-Z]{3}', currency):
        issues.append(f"BILLING_CURRENCY must be a 3-letter ISO code, got {currency!r}")

    return len(issues) == 0, issues

def check_billing_config(config) -> Dict[str, Any]:
    """
    Check billing configuration and log the outcome.

    Returns:
        dict: Status information including issues
    """
    is_valid, issues = validate_billing_config(config)

    result = {
        'billing_valid': is_valid,
        'enforce_transitions': bool(config.get('TRIP_ENFORCE_TRANSITIONS', True)),
        'require_completed_trip': bool(config.get('BILLING_REQUIRE_COMPLETED_TRIP', True)),
        'issues': issues,
    }

    if is_valid:
        logger.info("BILLING_CONFIG: tariff check PASSED")
    else:
        logger.warning(f"BILLING_CONFIG: tariff check FAILED - Issues: {len(issues)}")
        for issue in issues:
            logger.warning(f"BILLING_CONFIG: Issue - {issue}")

    return result

def require_valid_billing_config(config):
    """Raise ConfigValidationError when the tariff cannot be used"""
    is_valid, issues = validate_billing_config(config)
    if not is_valid:
        raise ConfigValidationError(issues)
