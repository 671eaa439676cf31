from models import Trip, TERMINAL_TRIP_STATUSES


def intervals_overlap(start1, end1, start2, end2):
    """
    Check if two half-open intervals [start1, end1) and [start2, end2) overlap.

    Touching intervals do not overlap, and a zero-width interval never
    overlaps anything.
    """
    if start1 is None or end1 is None or start2 is None or end2 is None:
        return False
    if start1 >= end1 or start2 >= end2:
        return False
    return start1 < end2 and end1 > start2


def find_resource_conflicts(column, resource_id, start, end, exclude_trip_id=None):
    """
    Return trips booked on the given resource whose window overlaps [start, end).

    column is Trip.vehicle_id or Trip.driver_id. Unscheduled candidates never
    conflict, and Cancelled or Completed trips never block a resource.
    """
    if resource_id is None or start is None or end is None or start >= end:
        return []

    query = Trip.query.filter(
        column == resource_id,
        Trip.status.notin_(TERMINAL_TRIP_STATUSES),
        Trip.start_time.isnot(None),
        Trip.end_time.isnot(None),
        Trip.start_time < end,
        Trip.end_time > start
    )

    if exclude_trip_id is not None:
        query = query.filter(Trip.id != exclude_trip_id)

    return [trip for trip in query.order_by(Trip.start_time).all()
            if intervals_overlap(trip.start_time, trip.end_time, start, end)]


def check_trip_conflicts(vehicle_id, driver_id, start, end, exclude_trip_id=None):
    """
    Check for booking conflicts for a vehicle and a driver within a time window
    """
    return {
        'vehicle_conflicts': find_resource_conflicts(Trip.vehicle_id, vehicle_id, start, end, exclude_trip_id),
        'driver_conflicts': find_resource_conflicts(Trip.driver_id, driver_id, start, end, exclude_trip_id),
    }
