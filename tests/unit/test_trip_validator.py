"""
Unit tests for trip payload validation
"""

import pytest
from datetime import datetime

from services.trip_validator import TripValidator
from tests.factories import ScheduledTripFactory, VehicleFactory, DriverFactory


def payload(**overrides):
    data = {
        'truck_type': '14FT',
        'trip_date': '2024-05-14',
        'number_of_trips': 1,
    }
    data.update(overrides)
    return data


class TestTripValidator:
    """Test TripValidator rules"""

    def test_minimal_payload_is_valid(self, db_session):
        assert TripValidator().validate(payload()) == []

    def test_all_field_errors_reported_together(self, db_session):
        errors = TripValidator().validate(payload(
            truck_type='',
            start_time='2024-05-14T12:00:00',
            end_time='2024-05-14T09:00:00',
            number_of_trips=0,
            time_window_from='15:00',
            time_window_to='10:00',
            packages=[
                {'package_type': 'Box', 'quantity': 0},
                {'package_type': 'Pallets', 'quantity': 2},
            ],
        ))

        assert errors == [
            "Truck Type is required",
            "End time must be greater than start time",
            "Number of trips must be >= 1",
            "Time Window To must be greater than From",
            "Package Box: Quantity must be > 0",
            "Number of Pallets is mandatory for Pallet type",
        ]

    def test_equal_start_and_end_rejected(self, db_session):
        errors = TripValidator().validate(payload(
            start_time='2024-05-14T09:00:00', end_time='2024-05-14T09:00:00'))
        assert errors == ["End time must be greater than start time"]

    def test_pallet_package_with_count_is_valid(self, db_session):
        errors = TripValidator().validate(payload(
            packages=[{'package_type': 'Pallets', 'quantity': 4, 'pallet_count': 4}]))
        assert errors == []

    def test_unparseable_values_reported(self, db_session):
        errors = TripValidator().validate(payload(start_time='tomorrow', vehicle_id='abc'))
        assert "Start time is not valid: 'tomorrow'" in errors
        assert "Vehicle is not valid: 'abc'" in errors

    def test_malformed_package_entry_reported(self, db_session):
        errors = TripValidator().validate(payload(packages=['Box']))
        assert errors == ["Package #1 is not valid"]

    def test_non_text_package_type_reported(self, db_session):
        errors = TripValidator().validate(payload(packages=[{'package_type': 5, 'quantity': 1}]))
        assert errors == ["Package #1: Package type is not valid: 5"]

    def test_non_text_truck_type_reported(self, db_session):
        data, errors = TripValidator().parse(payload(truck_type=24, remarks=['fragile']))

        assert data['truck_type'] is None
        assert data['remarks'] is None
        assert errors == ["Truck Type is not valid: 24", "Remarks is not valid: ['fragile']"]

    def test_offset_timestamps_converted_to_local_time(self, db_session):
        data, errors = TripValidator().parse(payload(
            start_time='2024-05-14T02:00:00Z', end_time='2024-05-14T11:00:00+08:00'))

        assert errors == []
        assert data['start_time'] == datetime(2024, 5, 14, 10, 0)
        assert data['end_time'] == datetime(2024, 5, 14, 11, 0)

    def test_utc_candidate_conflicts_with_local_booking(self, db_session):
        booked = ScheduledTripFactory()
        vehicle = VehicleFactory()

        errors = TripValidator().validate(payload(
            vehicle_id=vehicle.id, driver_id=booked.driver_id,
            start_time='2024-05-14T02:00:00Z', end_time='2024-05-14T03:00:00Z'))

        assert errors == [
            f"Driver is already booked on another active trip during this time ({booked.trip_number})"
        ]

    def test_unknown_resources_reported(self, db_session):
        errors = TripValidator().validate(payload(vehicle_id=999, driver_id=998))
        assert errors == ["Vehicle 999 does not exist", "Driver 998 does not exist"]

    def test_touching_vehicle_windows_do_not_conflict(self, db_session):
        booked = ScheduledTripFactory()
        driver = DriverFactory()

        errors = TripValidator().validate(payload(
            vehicle_id=booked.vehicle_id, driver_id=driver.id,
            start_time='2024-05-14T12:00:00', end_time='2024-05-14T15:00:00'))

        assert errors == []

    def test_overlapping_driver_window_conflicts(self, db_session):
        booked = ScheduledTripFactory()
        vehicle = VehicleFactory()

        errors = TripValidator().validate(payload(
            vehicle_id=vehicle.id, driver_id=booked.driver_id,
            start_time='2024-05-14T11:00:00', end_time='2024-05-14T13:00:00'))

        assert errors == [
            f"Driver is already booked on another active trip during this time ({booked.trip_number})"
        ]

    def test_conflicts_skipped_without_schedule(self, db_session):
        booked = ScheduledTripFactory()

        errors = TripValidator().validate(payload(vehicle_id=booked.vehicle_id, driver_id=booked.driver_id))

        assert errors == []

    def test_edited_trip_does_not_conflict_with_itself(self, db_session):
        booked = ScheduledTripFactory()

        errors = TripValidator().validate(payload(
            vehicle_id=booked.vehicle_id, driver_id=booked.driver_id,
            start_time='2024-05-14T10:00:00', end_time='2024-05-14T13:00:00'),
            exclude_trip_id=booked.id)

        assert errors == []

    def test_parse_normalizes_values(self, db_session):
        data, errors = TripValidator().parse(payload(
            helper_name='  ', proof_of_delivery_required='true',
            time_window_from='08:30', number_of_trips=None))

        assert errors == []
        assert data['helper_name'] is None
        assert data['proof_of_delivery_required'] is True
        assert data['time_window_from'].hour == 8
        assert data['number_of_trips'] == 1

    @pytest.mark.parametrize('value', [1.5, True, 'two'])
    def test_number_of_trips_must_be_whole(self, db_session, value):
        errors = TripValidator().validate(payload(number_of_trips=value))
        assert errors == [f"Number of trips is not valid: {value!r}"]
