"""
Trip Service

Handles the manifest lifecycle: trip creation and editing with availability
checks, status transitions with job cascades, trip stops, proof of delivery,
and conversion of customer job requests into planned trips.
"""

from typing import Optional, Dict, Any, List
import logging
from flask import current_app
import timezone_utils
from models import (db, Trip, TripPackage, TripStop, Job, JobRequest,
                    TripStatus, TripStopStatus, JobStatus, JobRequestStatus,
                    TERMINAL_TRIP_STATUSES, parse_status)
from .transaction_helper import TransactionHelper
from .audit_service import AuditService
from .file_service import FileService
from .job_sync_service import JobStatusSynchronizer
from .results import ServiceResult
from .trip_state_machine import derive_status, check_transition, apply_transition
from .trip_validator import TripValidator

logger = logging.getLogger(__name__)

# Fields copied from validated data onto the trip on create/update
EDITABLE_FIELDS = (
    'trip_date', 'truck_type', 'helper_name', 'remarks', 'charges_type',
    'number_of_trips', 'total_cost', 'vehicle_id', 'driver_id',
    'start_time', 'end_time', 'time_window_from', 'time_window_to',
    'proof_of_delivery_required', 'pickup_location', 'drop_location',
)


def _resource_lock_keys(*pairs):
    return [f"{kind}:{resource_id}" for kind, resource_id in pairs if resource_id is not None]


class TripService:
    """Service class for trip management operations"""

    def __init__(self):
        self.audit_service = AuditService()
        self.file_service = FileService()
        self.job_sync = JobStatusSynchronizer()
        self.validator = TripValidator()

    def _next_trip_number(self, trip_date) -> str:
        """Next TRIP-YYYYMMDD-NNN for the date, after the highest one in use"""
        prefix = f"TRIP-{trip_date.strftime('%Y%m%d')}-"
        TransactionHelper.acquire_locks(f"trip-number:{trip_date.isoformat()}")

        existing = db.session.query(Trip.trip_number) \
                             .filter(Trip.trip_number.like(f"{prefix}%")).all()
        highest = 0
        for (number,) in existing:
            suffix = number[len(prefix):]
            if suffix.isdigit():
                highest = max(highest, int(suffix))
        return f"{prefix}{highest + 1:03d}"

    def _replace_packages(self, trip: Trip, packages: List[Dict[str, Any]]):
        trip.packages = [
            TripPackage(package_type=p['package_type'], quantity=p['quantity'],
                        volume=p['volume'], pallet_count=p['pallet_count'])
            for p in packages
        ]

    @TransactionHelper.with_transaction
    def create_trip(self, payload: Dict[str, Any], user_id: Optional[int] = None) -> ServiceResult:
        """
        Create a trip from a JSON/form payload.

        Args:
            payload: Trip fields in snake_case, packages as a list of dicts
            user_id: Acting user for the audit trail

        Returns:
            ServiceResult: (success, errors, trip, kind)
        """
        data, errors = self.validator.parse(payload)

        # Hold the resources so no concurrent booking slips in after the check
        TransactionHelper.acquire_locks(*_resource_lock_keys(
            ('vehicle', data.get('vehicle_id')), ('driver', data.get('driver_id'))))

        errors += self.validator.validate_data(data)

        job_request = None
        if data.get('job_request_id') is not None:
            job_request = db.session.get(JobRequest, data['job_request_id'])
            if job_request is None:
                errors.append(f"Job request {data['job_request_id']} does not exist")
            elif job_request.request_status != JobRequestStatus.SUBMITTED:
                errors.append("Request already processed")

        if errors:
            return ServiceResult.invalid(errors)

        trip = Trip()
        for field in EDITABLE_FIELDS:
            setattr(trip, field, data.get(field))
        trip.job_request_id = data.get('job_request_id')
        trip.status = derive_status(TripStatus.CREATED, trip.vehicle_id, trip.driver_id)
        trip.trip_number = self._next_trip_number(trip.trip_date)
        self._replace_packages(trip, data['packages'])

        db.session.add(trip)
        db.session.flush()

        if job_request is not None:
            job_request.request_status = JobRequestStatus.CONVERTED
            job_request.trip_id = trip.id
            job_request.updated_by = user_id

        self.audit_service.log_action(
            action='create_trip',
            entity_type='trip',
            entity_id=trip.id,
            details={
                'trip_number': trip.trip_number,
                'status': trip.status.value,
                'vehicle_id': trip.vehicle_id,
                'driver_id': trip.driver_id,
            },
            user_id=user_id
        )

        logger.info(f"Trip {trip.trip_number} created with status {trip.status.value}")
        return ServiceResult.ok(trip)

    @TransactionHelper.with_transaction
    def update_trip(self, trip_id: int, payload: Dict[str, Any], user_id: Optional[int] = None) -> ServiceResult:
        """
        Replace a trip's fields and packages.

        The trip is excluded from its own availability check. Completed and
        cancelled trips cannot be edited.
        """
        data, errors = self.validator.parse(payload)
        TransactionHelper.acquire_locks(*_resource_lock_keys(
            ('vehicle', data.get('vehicle_id')), ('driver', data.get('driver_id')),
            ('trip', trip_id)))

        trip = db.session.get(Trip, trip_id, populate_existing=True)
        if not trip:
            return ServiceResult.not_found("Trip not found")

        if trip.is_terminal:
            return ServiceResult.state_error(f"Trip is {trip.status.value} and cannot be edited")

        errors += self.validator.validate_data(data, exclude_trip_id=trip_id)
        if errors:
            return ServiceResult.invalid(errors)

        previous_status = trip.status
        for field in EDITABLE_FIELDS:
            setattr(trip, field, data.get(field))
        trip.status = derive_status(trip.status, trip.vehicle_id, trip.driver_id)
        self._replace_packages(trip, data['packages'])

        self.audit_service.log_action(
            action='update_trip',
            entity_type='trip',
            entity_id=trip.id,
            details={
                'trip_number': trip.trip_number,
                'from': previous_status.value,
                'to': trip.status.value,
                'vehicle_id': trip.vehicle_id,
                'driver_id': trip.driver_id,
            },
            user_id=user_id
        )

        logger.info(f"Trip {trip.trip_number} updated (status {trip.status.value})")
        return ServiceResult.ok(trip)

    def get_trip(self, trip_id: int) -> ServiceResult:
        trip = db.session.get(Trip, trip_id)
        if not trip:
            return ServiceResult.not_found("Trip not found")
        return ServiceResult.ok(trip)

    def list_trips(self, status: Optional[str] = None, trip_date=None) -> ServiceResult:
        """
        List trips, most recent trip date first.

        Args:
            status: Optional status name filter
            trip_date: Optional date filter
        """
        query = Trip.query
        if status:
            try:
                query = query.filter(Trip.status == parse_status(TripStatus, status))
            except ValueError as e:
                return ServiceResult.invalid([str(e)])
        if trip_date is not None:
            query = query.filter(Trip.trip_date == trip_date)
        return ServiceResult.ok(query.order_by(Trip.trip_date.desc(), Trip.trip_number.desc()).all())

    @TransactionHelper.with_transaction
    def advance_status(self, trip_id: int, status_name: str, user_id: Optional[int] = None) -> ServiceResult:
        """
        Move a trip to a new status and apply its side effects.

        StartTrip and InTransit stamp the start time when unset, InTransit
        moves the trip's jobs to InTransit, Completed stamps the end time and
        moves the jobs to Delivered.

        Returns:
            ServiceResult: data is the updated Trip
        """
        TransactionHelper.acquire_locks(f"trip:{trip_id}")

        trip = db.session.get(Trip, trip_id)
        if not trip:
            return ServiceResult.not_found("Trip not found")

        try:
            target = parse_status(TripStatus, status_name)
        except ValueError as e:
            return ServiceResult.state_error(str(e))

        enforce = current_app.config.get('TRIP_ENFORCE_TRANSITIONS', True)
        error = check_transition(trip, target, enforce=enforce)
        if error:
            logger.warning(f"Rejected status change for trip {trip.trip_number}: {error}")
            return ServiceResult.state_error(error)

        previous = trip.status
        changed_jobs = apply_transition(trip, target)

        self.audit_service.log_action(
            action='advance_trip_status',
            entity_type='trip',
            entity_id=trip.id,
            details={
                'trip_number': trip.trip_number,
                'from': previous.value,
                'to': target.value,
                'jobs_changed': changed_jobs,
            },
            user_id=user_id
        )

        logger.info(f"Trip {trip.trip_number} status {previous.value} -> {target.value}")
        return ServiceResult.ok(trip)

    @TransactionHelper.with_transaction
    def add_stop(self, trip_id: int, job_id: int, sequence_order: Optional[int] = None,
                 user_id: Optional[int] = None) -> ServiceResult:
        """
        Attach a job to a trip as its next stop.

        Args:
            trip_id: ID of the trip
            job_id: ID of the job to carry
            sequence_order: Explicit position; must come after every existing stop

        Returns:
            ServiceResult: data is the new TripStop
        """
        TransactionHelper.acquire_locks(f"trip:{trip_id}", f"job:{job_id}")

        trip = db.session.get(Trip, trip_id)
        if not trip:
            return ServiceResult.not_found("Trip not found")

        job = db.session.get(Job, job_id)
        if not job:
            return ServiceResult.not_found("Job not found")

        if trip.is_terminal:
            return ServiceResult.state_error(f"Trip is {trip.status.value}; stops cannot be added")

        if job.status == JobStatus.CANCELLED:
            return ServiceResult.state_error("Job is cancelled")

        active_stop = db.session.query(TripStop, Trip.trip_number) \
                                .join(Trip, Trip.id == TripStop.trip_id) \
                                .filter(TripStop.job_id == job_id,
                                        Trip.status.notin_(TERMINAL_TRIP_STATUSES)) \
                                .first()
        if active_stop:
            return ServiceResult.state_error(f"Job is already on trip {active_stop[1]}")

        highest = max((s.sequence_order for s in trip.stops), default=0)
        if sequence_order is None:
            sequence_order = highest + 1
        elif sequence_order <= highest:
            return ServiceResult.invalid([f"Sequence order must be greater than {highest}"])

        stop = TripStop(trip_id=trip.id, job_id=job.id, sequence_order=sequence_order,
                        status=TripStopStatus.CREATED)
        trip.stops.append(stop)
        db.session.flush()

        self.audit_service.log_action(
            action='add_trip_stop',
            entity_type='trip',
            entity_id=trip.id,
            details={'stop_id': stop.id, 'job_id': job.id, 'sequence_order': sequence_order},
            user_id=user_id
        )

        logger.info(f"Job {job.id} added to trip {trip.trip_number} at stop {sequence_order}")
        return ServiceResult.ok(stop)

    def update_stop_status(self, stop_id: int, status_name: str, user_id: Optional[int] = None) -> ServiceResult:
        return self.job_sync.update_stop_status(stop_id, status_name, user_id=user_id)

    @TransactionHelper.with_transaction
    def set_pod_url(self, trip_id: int, url: str, user_id: Optional[int] = None) -> ServiceResult:
        """Record where the trip's proof of delivery is stored"""
        trip = db.session.get(Trip, trip_id)
        if not trip:
            return ServiceResult.not_found("Trip not found")

        if not url or not url.strip():
            return ServiceResult.invalid(["POD URL is required"])
        if len(url) > 500:
            return ServiceResult.invalid(["POD URL must be at most 500 characters"])

        if trip.status == TripStatus.CANCELLED:
            return ServiceResult.state_error("Trip is Cancelled; proof of delivery cannot be recorded")

        trip.proof_of_delivery_url = url.strip()

        self.audit_service.log_action(
            action='set_trip_pod',
            entity_type='trip',
            entity_id=trip.id,
            details={'url': trip.proof_of_delivery_url},
            user_id=user_id
        )

        logger.info(f"POD recorded for trip {trip.trip_number}")
        return ServiceResult.ok(trip)

    def upload_pod(self, trip_id: int, file, user_id: Optional[int] = None) -> ServiceResult:
        """
        Store an uploaded POD document and record its URL on the trip.

        A stored file whose URL cannot be recorded is removed again; a
        previously recorded POD file is removed once the new one is saved.
        """
        trip = db.session.get(Trip, trip_id)
        if not trip:
            return ServiceResult.not_found("Trip not found")
        previous_url = trip.proof_of_delivery_url

        stored, url, error = self.file_service.store_pod(trip_id, file)
        if not stored:
            return ServiceResult.invalid([error])

        result = self.set_pod_url(trip_id, url, user_id=user_id)
        if not result.success:
            self.file_service.delete_pod(url)
            return result

        if previous_url and previous_url != url:
            self.file_service.delete_pod(previous_url)
        return result

    @TransactionHelper.with_transaction
    def convert_job_request(self, request_id: int, user_id: Optional[int] = None) -> ServiceResult:
        """
        Turn a submitted job request into a Planned trip.

        Returns:
            ServiceResult: data is the new Trip
        """
        TransactionHelper.acquire_locks(f"job-request:{request_id}")

        job_request = db.session.get(JobRequest, request_id)
        if not job_request:
            return ServiceResult.not_found("Job request not found")

        if job_request.request_status != JobRequestStatus.SUBMITTED:
            return ServiceResult.state_error("Request already processed")

        trip_date = job_request.preferred_date or timezone_utils.now().date()
        remarks = f"Converted from Request: {job_request.cargo_description or ''}".strip()

        trip = Trip(
            trip_date=trip_date,
            status=TripStatus.PLANNED,
            pickup_location=job_request.pickup_location,
            drop_location=job_request.drop_location,
            remarks=remarks[:250],
            number_of_trips=1,
            total_cost=0.0,
            job_request_id=job_request.id,
        )
        trip.trip_number = self._next_trip_number(trip_date)
        db.session.add(trip)
        db.session.flush()

        job_request.request_status = JobRequestStatus.CONVERTED
        job_request.trip_id = trip.id
        job_request.updated_by = user_id

        self.audit_service.log_action(
            action='convert_job_request',
            entity_type='job_request',
            entity_id=job_request.id,
            details={'trip_id': trip.id, 'trip_number': trip.trip_number},
            user_id=user_id
        )

        logger.info(f"Job request {job_request.id} converted to trip {trip.trip_number}")
        return ServiceResult.ok(trip)
