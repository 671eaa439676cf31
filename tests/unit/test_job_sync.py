"""
Unit tests for trip stop to job status synchronization
"""

import pytest

from models import Job, TripStop, JobStatus, TripStopStatus, TripStatus, AuditLog
from services.job_sync_service import JobStatusSynchronizer, advance_job_status
from services.results import NOT_FOUND, STATE_ERROR
from tests.factories import TripFactory, TripStopFactory, JobFactory


@pytest.fixture
def stop(db_session):
    trip = TripFactory(status=TripStatus.IN_TRANSIT)
    return TripStopFactory(trip_id=trip.id)


class TestAdvanceJobStatus:
    """Monotonic job status"""

    def test_moves_forward(self):
        job = Job(status=JobStatus.RECEIVED)
        assert advance_job_status(job, JobStatus.IN_TRANSIT) is True
        assert job.status == JobStatus.IN_TRANSIT

    def test_never_downgrades(self):
        job = Job(status=JobStatus.DELIVERED)
        assert advance_job_status(job, JobStatus.IN_TRANSIT) is False
        assert advance_job_status(job, JobStatus.DELIVERED) is False
        assert job.status == JobStatus.DELIVERED

    def test_cancelled_job_left_alone(self):
        job = Job(status=JobStatus.CANCELLED)
        assert advance_job_status(job, JobStatus.DELIVERED) is False
        assert job.status == JobStatus.CANCELLED


class TestJobStatusSynchronizer:
    """Test JobStatusSynchronizer.update_stop_status"""

    def test_picked_up_moves_job_in_transit(self, db_session, stop):
        result = JobStatusSynchronizer().update_stop_status(stop.id, 'PickedUp')

        assert result.success is True
        assert result.data.status == TripStopStatus.PICKED_UP
        assert result.data.job.status == JobStatus.IN_TRANSIT

    def test_delivered_moves_job_delivered(self, db_session, stop):
        JobStatusSynchronizer().update_stop_status(stop.id, 'PickedUp')
        result = JobStatusSynchronizer().update_stop_status(stop.id, 'Delivered')

        assert result.success is True
        assert result.data.job.status == JobStatus.DELIVERED

    def test_delivered_twice_keeps_job_delivered(self, db_session, stop):
        sync = JobStatusSynchronizer()
        sync.update_stop_status(stop.id, 'Delivered')

        result = sync.update_stop_status(stop.id, 'Delivered')

        assert result.success is True
        assert result.data.job.status == JobStatus.DELIVERED

    def test_picked_up_after_delivered_rejected(self, db_session, stop):
        sync = JobStatusSynchronizer()
        sync.update_stop_status(stop.id, 'Delivered')

        result = sync.update_stop_status(stop.id, 'PickedUp')

        assert result.kind == STATE_ERROR
        stored = db_session.get(TripStop, stop.id)
        assert stored.status == TripStopStatus.DELIVERED
        assert stored.job.status == JobStatus.DELIVERED

    def test_picked_up_on_already_delivered_job(self, db_session):
        trip = TripFactory(status=TripStatus.IN_TRANSIT)
        stop = TripStopFactory(trip_id=trip.id, job=JobFactory(status=JobStatus.DELIVERED))

        result = JobStatusSynchronizer().update_stop_status(stop.id, 'PickedUp')

        assert result.success is True
        assert result.data.job.status == JobStatus.DELIVERED

    @pytest.mark.parametrize('status_name', ['Lost', '', None, 'Created'])
    def test_invalid_status(self, db_session, stop, status_name):
        result = JobStatusSynchronizer().update_stop_status(stop.id, status_name)

        assert result.kind == STATE_ERROR
        assert result.errors == [f"Invalid status: {status_name}"]

    def test_unknown_stop(self, db_session):
        result = JobStatusSynchronizer().update_stop_status(404, 'PickedUp')

        assert result.kind == NOT_FOUND
        assert result.errors == ["Trip stop not found"]

    def test_cancelled_trip_stops_frozen(self, db_session):
        trip = TripFactory(status=TripStatus.CANCELLED)
        stop = TripStopFactory(trip_id=trip.id)

        result = JobStatusSynchronizer().update_stop_status(stop.id, 'PickedUp')

        assert result.kind == STATE_ERROR

    def test_change_is_audited(self, db_session, stop):
        JobStatusSynchronizer().update_stop_status(stop.id, 'PickedUp')

        entry = AuditLog.query.filter_by(action='update_stop_status', entity_id=stop.id).one()
        details = entry.get_details()
        assert details['from'] == 'Created'
        assert details['to'] == 'PickedUp'
        assert details['job_changed'] is True
