"""
Concurrent bookings, invoice generation and stop updates against a
file-backed SQLite database, one app context (and session) per thread
"""

import threading
import time
import pytest

from app import create_app, db
from models import Trip, TripStop, TripStatus, TripStopStatus, Invoice
from services.invoice_service import InvoiceService
from services.job_sync_service import JobStatusSynchronizer
from services.results import STATE_ERROR, VALIDATION_ERROR
from services.transaction_helper import _local_lock_for
from services.trip_service import TripService
from tests.factories import (VehicleFactory, DriverFactory, ScheduledTripFactory,
                             TripStopFactory)


@pytest.fixture
def file_app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'fleetx.db'}",
        'UPLOAD_FOLDER': str(tmp_path / 'uploads'),
        'APP_TIMEZONE': 'Asia/Singapore',
        'TRIP_ENFORCE_TRANSITIONS': True,
        'BILLING_REQUIRE_COMPLETED_TRIP': True,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


def run_concurrently(app, *calls):
    """Run each call in its own thread and app context, released together"""
    barrier = threading.Barrier(len(calls))
    results = [None] * len(calls)
    failures = []

    def worker(index, call):
        with app.app_context():
            barrier.wait()
            try:
                results[index] = call()
            except Exception as e:
                failures.append(e)

    threads = [threading.Thread(target=worker, args=(i, call)) for i, call in enumerate(calls)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert failures == []
    return results


def booking(vehicle_id, driver_id):
    return {
        'truck_type': '24FT',
        'trip_date': '2024-05-14',
        'vehicle_id': vehicle_id,
        'driver_id': driver_id,
        'start_time': '2024-05-14T09:00:00',
        'end_time': '2024-05-14T12:00:00',
    }


class TestConcurrentBookings:
    """Racing requests for the same resources"""

    def test_one_vehicle_booked_once_per_window(self, file_app):
        vehicle_id = VehicleFactory().id
        first_driver_id, second_driver_id = DriverFactory().id, DriverFactory().id
        service = TripService()

        results = run_concurrently(
            file_app,
            lambda: service.create_trip(booking(vehicle_id, first_driver_id)),
            lambda: service.create_trip(booking(vehicle_id, second_driver_id)),
        )

        assert sorted(result.success for result in results) == [False, True]
        rejected = next(result for result in results if not result.success)
        assert rejected.kind == VALIDATION_ERROR
        assert rejected.errors[0].startswith("Vehicle is already booked on another active trip")
        db.session.expire_all()
        assert Trip.query.filter_by(vehicle_id=vehicle_id).count() == 1

    def test_trip_invoiced_once(self, file_app):
        trip_id = ScheduledTripFactory(status=TripStatus.COMPLETED, truck_type='24FT').id
        service = InvoiceService()

        results = run_concurrently(
            file_app,
            lambda: service.generate_for_trip(trip_id),
            lambda: service.generate_for_trip(trip_id),
        )

        assert sorted(result.success for result in results) == [False, True]
        rejected = next(result for result in results if not result.success)
        assert rejected.kind == STATE_ERROR
        assert rejected.errors == ["Invoice already exists for this trip"]
        db.session.expire_all()
        assert Invoice.query.filter_by(trip_id=trip_id).count() == 1

    def test_stop_update_waits_for_cancel(self, file_app):
        trip = ScheduledTripFactory()
        stop_id = TripStopFactory(trip_id=trip.id).id
        trip_lock = _local_lock_for(f"trip:{trip.id}")
        outcome = []

        def update_stop():
            with file_app.app_context():
                outcome.append(JobStatusSynchronizer().update_stop_status(stop_id, 'PickedUp'))

        trip_lock.acquire()
        try:
            worker = threading.Thread(target=update_stop)
            worker.start()
            time.sleep(0.2)
            trip.status = TripStatus.CANCELLED
            db.session.commit()
        finally:
            trip_lock.release()
        worker.join(timeout=30)

        assert outcome[0].kind == STATE_ERROR
        assert outcome[0].errors == ["Trip is cancelled; stop status cannot change"]
        db.session.expire_all()
        assert db.session.get(TripStop, stop_id).status == TripStopStatus.CREATED
