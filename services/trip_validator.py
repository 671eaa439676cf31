"""
Trip Validator

Field and scheduling validation for trip create/update payloads. Every rule
runs independently so the caller receives the complete list of problems in
one response. Validation never writes to the database.
"""

from typing import Optional, Dict, Any, List, Tuple
import logging
from datetime import datetime, date, time
import timezone_utils
from models import db, Vehicle, Driver, PALLET_PACKAGE_TYPE
from utils.scheduling import check_trip_conflicts

logger = logging.getLogger(__name__)

def _parse_datetime(value):
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        raise ValueError(value)
    parsed = datetime.fromisoformat(value.strip().replace('Z', '+00:00'))
    # Offset-bearing timestamps are stored as naive local time
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone_utils.get_app_timezone()).replace(tzinfo=None)
    return parsed


def _parse_date(value):
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return datetime.fromisoformat(value.strip()[:10]).date()
    raise ValueError(value)


def _parse_time(value):
    if value is None or value == '':
        return None
    if isinstance(value, time):
        return value
    if isinstance(value, str):
        return time.fromisoformat(value.strip())
    raise ValueError(value)


def _parse_optional_int(value):
    if value is None or value == '':
        return None
    if isinstance(value, bool):
        raise ValueError(value)
    if isinstance(value, float) and not value.is_integer():
        raise ValueError(value)
    return int(value)


def _parse_bool(value):
    if isinstance(value, str):
        return value.strip().lower() in ('true', '1', 'yes', 'on')
    return bool(value)


class TripValidator:
    """Validates trip payloads against field rules and resource bookings"""

    def parse(self, payload: Dict[str, Any]) -> Tuple[Dict[str, Any], List[str]]:
        """
        Normalize a raw payload (JSON or form values) into typed trip fields.

        Returns:
            tuple: (data: dict, errors: list) - errors describe unparseable values
        """
        payload = payload or {}
        errors = []
        data = {}

        def convert(field, parser, label):
            try:
                data[field] = parser(payload.get(field))
            except (TypeError, ValueError):
                data[field] = None
                errors.append(f"{label} is not valid: {payload.get(field)!r}")

        convert('trip_date', _parse_date, 'Trip date')
        convert('start_time', _parse_datetime, 'Start time')
        convert('end_time', _parse_datetime, 'End time')
        convert('time_window_from', _parse_time, 'Time Window From')
        convert('time_window_to', _parse_time, 'Time Window To')
        convert('vehicle_id', _parse_optional_int, 'Vehicle')
        convert('driver_id', _parse_optional_int, 'Driver')
        convert('job_request_id', _parse_optional_int, 'Job request')

        number_of_trips = payload.get('number_of_trips', 1)
        try:
            data['number_of_trips'] = _parse_optional_int(number_of_trips)
            if data['number_of_trips'] is None:
                data['number_of_trips'] = 1
        except (TypeError, ValueError):
            data['number_of_trips'] = None
            errors.append(f"Number of trips is not valid: {number_of_trips!r}")

        try:
            data['total_cost'] = float(payload.get('total_cost') or 0)
        except (TypeError, ValueError):
            data['total_cost'] = 0.0
            errors.append(f"Total cost is not valid: {payload.get('total_cost')!r}")

        text_fields = (
            ('truck_type', 'Truck Type'),
            ('charges_type', 'Charges type'),
            ('helper_name', 'Helper name'),
            ('remarks', 'Remarks'),
            ('pickup_location', 'Pickup location'),
            ('drop_location', 'Drop location'),
        )
        for field, label in text_fields:
            value = payload.get(field)
            if value is None or isinstance(value, str):
                data[field] = (value or '').strip() or None
            else:
                data[field] = None
                errors.append(f"{label} is not valid: {value!r}")

        data['proof_of_delivery_required'] = _parse_bool(payload.get('proof_of_delivery_required', False))

        packages = []
        for index, raw in enumerate(payload.get('packages') or [], start=1):
            if not isinstance(raw, dict):
                errors.append(f"Package #{index} is not valid")
                continue
            package_type = raw.get('package_type')
            if package_type is not None and not isinstance(package_type, str):
                errors.append(f"Package #{index}: Package type is not valid: {package_type!r}")
                continue
            package_type = (package_type or '').strip()
            package ={'package_type': package_type, 'quantity': None, 'volume': None, 'pallet_count': None}
            label = package_type or f"#{index}"
            try:
                package['quantity'] = _parse_optional_int(raw.get('quantity'))
            except (TypeError, ValueError):
                errors.append(f"Package {label}: Quantity must be a whole number")
            try:
                package['pallet_count'] = _parse_optional_int(raw.get('pallet_count'))
            except (TypeError, ValueError):
                errors.append(f"Package {label}: Number of pallets must be a whole number")
            try:
                volume = raw.get('volume')
                package['volume'] = float(volume) if volume not in (None, '') else None
            except (TypeError, ValueError):
                errors.append(f"Package {label}: Volume is not valid")
            packages.append(package)
        data['packages'] = packages

        return data, errors

    def validate_data(self, data: Dict[str, Any], exclude_trip_id: Optional[int] = None) -> List[str]:
        """
        Validate normalized trip data.

        Args:
            data: Output of parse()
            exclude_trip_id: Trip being edited, ignored by conflict checks

        Returns:
            list: Human-readable errors, empty when valid
        """
        errors = []

        if not data.get('truck_type'):
            errors.append("Truck Type is required")

        if data.get('trip_date') is None:
            errors.append("Trip date is required")

        start, end = data.get('start_time'), data.get('end_time')
        if start is not None and end is not None and end <= start:
            errors.append("End time must be greater than start time")

        if data.get('number_of_trips') is not None and data['number_of_trips'] < 1:
            errors.append("Number of trips must be >= 1")

        window_from, window_to = data.get('time_window_from'), data.get('time_window_to')
        if window_from is not None and window_to is not None and window_to <= window_from:
            errors.append("Time Window To must be greater than From")

        for index, package in enumerate(data.get('packages') or [], start=1):
            label = package.get('package_type') or f"#{index}"
            quantity = package.get('quantity')
            if quantity is None or quantity <= 0:
                errors.append(f"Package {label}: Quantity must be > 0")
            if package.get('package_type') == PALLET_PACKAGE_TYPE:
                pallet_count = package.get('pallet_count')
                if pallet_count is None or pallet_count <= 0:
                    errors.append("Number of Pallets is mandatory for Pallet type")

        vehicle_id, driver_id = data.get('vehicle_id'), data.get('driver_id')
        if vehicle_id is not None and db.session.get(Vehicle, vehicle_id) is None:
            errors.append(f"Vehicle {vehicle_id} does not exist")
            vehicle_id = None
        if driver_id is not None and db.session.get(Driver, driver_id) is None:
            errors.append(f"Driver {driver_id} does not exist")
            driver_id = None

        # Availability checks only apply to scheduled trips
        if start is not None and end is not None and (vehicle_id is not None or driver_id is not None):
            conflicts = check_trip_conflicts(vehicle_id, driver_id, start, end, exclude_trip_id)

            if conflicts['vehicle_conflicts']:
                numbers = ', '.join(t.trip_number for t in conflicts['vehicle_conflicts'])
                errors.append(f"Vehicle is already booked on another active trip during this time ({numbers})")

            if conflicts['driver_conflicts']:
                numbers = ', '.join(t.trip_number for t in conflicts['driver_conflicts'])
                errors.append(f"Driver is already booked on another active trip during this time ({numbers})")

        if errors:
            logger.info(f"Trip validation failed with {len(errors)} error(s)")
        return errors

    def validate(self, payload: Dict[str, Any], exclude_trip_id: Optional[int] = None) -> List[str]:
        """
        Validate a raw trip payload.

        Returns:
            list: All parse and rule errors, empty when the payload can be saved
        """
        data, errors = self.parse(payload)
        return errors + self.validate_data(data, exclude_trip_id)
