"""
Billing tariff and invoice line calculation.

The calculation is a pure function of a trip snapshot and a Tariff so that
invoice generation, tests and config validation all share one definition of
what a trip costs.
"""

from dataclasses import dataclass
from typing import List, Dict, Any, Optional

TRUCK_TYPE_24FT = '24FT'


@dataclass
class Tariff:
    """Rates applied when billing a trip"""
    tax_rate: float = 0.09
    base_rate_24ft: float = 150
    base_rate_default: float = 80
    pallet_rate: float = 15
    helper_fee: float = 40
    pod_fee: float = 10
    currency: str = 'SGD'

    @classmethod
    def from_config(cls, config) -> 'Tariff':
        """Build a tariff from Flask app.config (or any mapping)"""
        defaults = cls()
        return cls(
            tax_rate=float(config.get('BILLING_TAX_RATE', defaults.tax_rate)),
            base_rate_24ft=float(config.get('BILLING_BASE_RATE_24FT', defaults.base_rate_24ft)),
            base_rate_default=float(config.get('BILLING_BASE_RATE_DEFAULT', defaults.base_rate_default)),
            pallet_rate=float(config.get('BILLING_PALLET_RATE', defaults.pallet_rate)),
            helper_fee=float(config.get('BILLING_HELPER_FEE', defaults.helper_fee)),
            pod_fee=float(config.get('BILLING_POD_FEE', defaults.pod_fee)),
            currency=config.get('BILLING_CURRENCY', defaults.currency),
        )

    def tax_for(self, amount: float) -> float:
        return round(amount * self.tax_rate, 2)


def format_rate(value: float) -> str:
    """15.0 -> '15', 12.5 -> '12.50'"""
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.2f}"


def calculate_trip_charges(truck_type: Optional[str], total_pallets: int, helper_name: Optional[str],
                           pod_required: bool, tariff: Tariff,
                           vehicle_registration: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    Derive billable lines for a trip.

    Returns a list of {'description', 'amount', 'tax_amount'} dicts in billing
    order: transport, pallets, helper, POD.
    """
    lines = []

    def add_line(description, amount):
        amount = round(float(amount), 2)
        lines.append({
            'description': description,
            'amount': amount,
            'tax_amount': tariff.tax_for(amount),
        })

    base_rate = tariff.base_rate_24ft if truck_type == TRUCK_TYPE_24FT else tariff.base_rate_default
    description = "Transport Charges"
    if truck_type:
        description += f" - {truck_type}"
    if vehicle_registration:
        description += f" - {vehicle_registration}"
    add_line(description, base_rate)

    if total_pallets and total_pallets > 0:
        add_line(f"Pallet Surcharge ({total_pallets} × ${format_rate(tariff.pallet_rate)})",
                 total_pallets * tariff.pallet_rate)

    if helper_name and helper_name.strip():
        add_line("Helper Service", tariff.helper_fee)

    if pod_required:
        add_line("POD Handling Fee", tariff.pod_fee)

    return lines


def summarize_lines(lines) -> Dict[str, float]:
    """
    Header totals for a set of lines: pre-tax amount and tax, each the sum of
    the per-line values.
    """
    total_amount = 0.0
    total_tax = 0.0
    for line in lines:
        amount = line['amount'] if isinstance(line, dict) else line.amount
        tax = line['tax_amount'] if isinstance(line, dict) else line.tax_amount
        total_amount += amount or 0
        total_tax += tax or 0
    return {
        'total_amount': round(total_amount, 2),
        'total_tax': round(total_tax, 2),
    }
