"""
Trip State Machine

Transition rules and side effects for trip status changes. The functions here
only mutate the objects they are handed; committing is left to the calling
service.
"""

from typing import Optional, List
import logging
import timezone_utils
from models import Trip, TripStatus, JobStatus
from .job_sync_service import advance_job_status

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    TripStatus.CREATED: {TripStatus.ASSIGNED, TripStatus.CANCELLED},
    TripStatus.PLANNED: {TripStatus.ASSIGNED, TripStatus.CANCELLED},
    TripStatus.ASSIGNED: {TripStatus.START_TRIP, TripStatus.START_LOAD,
                          TripStatus.IN_TRANSIT, TripStatus.CANCELLED},
    TripStatus.START_TRIP: {TripStatus.START_LOAD, TripStatus.IN_TRANSIT, TripStatus.CANCELLED},
    TripStatus.START_LOAD: {TripStatus.COMPLETE_LOAD, TripStatus.CANCELLED},
    TripStatus.COMPLETE_LOAD: {TripStatus.IN_TRANSIT, TripStatus.CANCELLED},
    TripStatus.IN_TRANSIT: {TripStatus.COMPLETED},
    TripStatus.COMPLETED: set(),
    TripStatus.CANCELLED: set(),
}


def derive_status(current: TripStatus, vehicle_id: Optional[int], driver_id: Optional[int]) -> TripStatus:
    """
    Status implied by resource assignment on create/update.

    A Created trip with both vehicle and driver becomes Assigned; an Assigned
    trip that loses either falls back to Created. Any other status is kept.
    """
    has_both = vehicle_id is not None and driver_id is not None
    if current == TripStatus.CREATED and has_both:
        return TripStatus.ASSIGNED
    if current == TripStatus.ASSIGNED and not has_both:
        return TripStatus.CREATED
    return current


def check_transition(trip: Trip, target: TripStatus, enforce: bool = True) -> Optional[str]:
    """
    Returns an error message when trip may not move to target, else None.

    With enforce=False any move out of a non-terminal status is allowed.
    """
    current = trip.status
    if current == target:
        return f"Trip is already {current.value}"

    if not ALLOWED_TRANSITIONS[current]:
        return f"Trip is {current.value} and can no longer change status"

    if enforce and target not in ALLOWED_TRANSITIONS[current]:
        return f"Cannot change trip status from {current.value} to {target.value}"

    if target == TripStatus.ASSIGNED and (trip.vehicle_id is None or trip.driver_id is None):
        return "Trip needs both a vehicle and a driver to be Assigned"

    return None


def apply_transition(trip: Trip, target: TripStatus) -> List[int]:
    """
    Set the new status and apply its side effects.

    Returns:
        list: IDs of jobs whose status changed
    """
    changed_jobs = []
    current_time = timezone_utils.now()

    if target in (TripStatus.START_TRIP, TripStatus.IN_TRANSIT) and trip.start_time is None:
        trip.start_time = current_time

    if target == TripStatus.IN_TRANSIT:
        for stop in trip.stops:
            if advance_job_status(stop.job, JobStatus.IN_TRANSIT):
                changed_jobs.append(stop.job_id)

    elif target == TripStatus.COMPLETED:
        trip.end_time = current_time
        for stop in trip.stops:
            if advance_job_status(stop.job, JobStatus.DELIVERED):
                changed_jobs.append(stop.job_id)

    logger.debug(f"Trip {trip.trip_number}: {trip.status.value} -> {target.value}, "
                 f"jobs changed: {changed_jobs}")
    trip.status = target
    return changed_jobs
