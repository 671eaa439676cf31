"""
Job Status Synchronizer

Keeps a job's status in step with the trip stops that carry it. Job status
only ever moves forward along Received -> InTransit -> Delivered; cancelled
jobs are left alone.
"""

from typing import Optional
import logging
from models import (db, Job, Trip, TripStop, JobStatus, TripStatus, TripStopStatus,
                    JOB_STATUS_ORDER, TRIP_STOP_STATUS_ORDER, parse_status)
from .transaction_helper import TransactionHelper
from .audit_service import AuditService
from .results import ServiceResult

logger = logging.getLogger(__name__)

STOP_TO_JOB_STATUS = {
    TripStopStatus.PICKED_UP: JobStatus.IN_TRANSIT,
    TripStopStatus.DELIVERED: JobStatus.DELIVERED,
}


def advance_job_status(job: Job, target: JobStatus) -> bool:
    """
    Move a job forward to target. Returns True if the status changed.

    Never downgrades: a job already at or past target is untouched, and a
    cancelled job is never revived.
    """
    if job is None or job.status == JobStatus.CANCELLED:
        return False
    if JOB_STATUS_ORDER[job.status] >= JOB_STATUS_ORDER[target]:
        return False
    logger.debug(f"Job {job.id}: {job.status.value} -> {target.value}")
    job.status = target
    return True


class JobStatusSynchronizer:
    """Service class for trip stop status changes"""

    def __init__(self):
        self.audit_service = AuditService()

    @TransactionHelper.with_transaction
    def update_stop_status(self, stop_id: int, status_name: str,
                           user_id: Optional[int] = None) -> ServiceResult:
        """
        Set a trip stop's status and carry it over to the linked job.

        Args:
            stop_id: ID of the trip stop
            status_name: 'PickedUp' or 'Delivered'
            user_id: Acting user for the audit trail

        Returns:
            ServiceResult: data is the updated TripStop
        """
        stop = db.session.get(TripStop, stop_id)
        if not stop:
            return ServiceResult.not_found("Trip stop not found")

        try:
            target = parse_status(TripStopStatus, status_name)
        except ValueError as e:
            return ServiceResult.state_error(str(e))

        if target not in STOP_TO_JOB_STATUS:
            return ServiceResult.state_error(f"Invalid status: {status_name}")

        # Lock before reading trip and stop state so a concurrent cancel is seen
        TransactionHelper.acquire_locks(f"trip:{stop.trip_id}")
        db.session.refresh(stop)

        trip = db.session.get(Trip, stop.trip_id, populate_existing=True)
        if trip is not None and trip.status == TripStatus.CANCELLED:
            return ServiceResult.state_error("Trip is cancelled; stop status cannot change")

        previous = stop.status
        if TRIP_STOP_STATUS_ORDER[target] < TRIP_STOP_STATUS_ORDER[previous]:
            return ServiceResult.state_error(
                f"Stop status cannot move back from {previous.value} to {target.value}")

        stop.status = target
        job_changed = advance_job_status(stop.job, STOP_TO_JOB_STATUS[target])

        self.audit_service.log_action(
            action='update_stop_status',
            entity_type='trip_stop',
            entity_id=stop.id,
            details={
                'trip_id': stop.trip_id,
                'job_id': stop.job_id,
                'from': previous.value,
                'to': target.value,
                'job_status': stop.job.status.value if stop.job else None,
                'job_changed': job_changed,
            },
            user_id=user_id
        )

        logger.info(f"Trip stop {stop.id} status {previous.value} -> {target.value} "
                    f"(job {stop.job_id} {'updated' if job_changed else 'unchanged'})")
        return ServiceResult.ok(stop)
