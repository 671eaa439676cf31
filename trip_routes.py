"""
Trip API Module
Web endpoints for trips, trip stops, proof of delivery and job request conversion
"""

from flask import Blueprint, request
import logging
from datetime import date

from services import TripService
from utils.api_responses import service_response, error_response, register_error_handlers

logger = logging.getLogger(__name__)

# Create trip API blueprint
trip_bp = Blueprint('trip_api', __name__)
register_error_handlers(trip_bp)

trip_service = TripService()


def _trip_dict(trip):
    return trip.to_dict()


def _stop_dict(stop):
    return stop.to_dict()


def _json_payload():
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else None


@trip_bp.route('/trips', methods=['GET'])
def list_trips():
    """List trips, optionally filtered by ?status= and ?date=YYYY-MM-DD"""
    trip_date = request.args.get('date')
    if trip_date:
        try:
            trip_date = date.fromisoformat(trip_date)
        except ValueError:
            return error_response(f"Invalid date: {trip_date}", 400)
    result = trip_service.list_trips(status=request.args.get('status'), trip_date=trip_date or None)
    return service_response(result, _trip_dict)


@trip_bp.route('/trips', methods=['POST'])
def create_trip():
    payload = _json_payload()
    if payload is None:
        return error_response("Request body must be a JSON object", 400)
    result = trip_service.create_trip(payload)
    return service_response(result, _trip_dict, success_code=201)


@trip_bp.route('/trips/<int:trip_id>', methods=['GET'])
def get_trip(trip_id):
    return service_response(trip_service.get_trip(trip_id), _trip_dict)


@trip_bp.route('/trips/<int:trip_id>', methods=['PUT'])
def update_trip(trip_id):
    payload = _json_payload()
    if payload is None:
        return error_response("Request body must be a JSON object", 400)
    return service_response(trip_service.update_trip(trip_id, payload), _trip_dict)


@trip_bp.route('/trips/<int:trip_id>/status', methods=['PUT', 'POST'])
def update_trip_status(trip_id):
    """Body: {"status": "InTransit"}"""
    payload = _json_payload() or {}
    result = trip_service.advance_status(trip_id, payload.get('status'))
    return service_response(result, _trip_dict)


@trip_bp.route('/trips/<int:trip_id>/stops', methods=['POST'])
def add_trip_stop(trip_id):
    """Body: {"job_id": 7, "sequence_order": 2}"""
    payload = _json_payload() or {}
    job_id = payload.get('job_id')
    sequence_order = payload.get('sequence_order')
    if not isinstance(job_id, int) or isinstance(job_id, bool):
        return error_response("job_id must be an integer", 400)
    if sequence_order is not None and (not isinstance(sequence_order, int) or isinstance(sequence_order, bool)):
        return error_response("sequence_order must be an integer", 400)
    result = trip_service.add_stop(trip_id, job_id, sequence_order)
    return service_response(result, _stop_dict, success_code=201)


@trip_bp.route('/trip-stops/<int:stop_id>/status', methods=['PUT', 'POST'])
def update_stop_status(stop_id):
    """Body: {"status": "PickedUp"}"""
    payload = _json_payload() or {}
    result = trip_service.update_stop_status(stop_id, payload.get('status'))
    return service_response(result, _stop_dict)


@trip_bp.route('/trips/<int:trip_id>/pod', methods=['POST'])
def upload_pod(trip_id):
    """Multipart upload with the document in the 'file' field"""
    file = request.files.get('file')
    if file is None:
        return error_response("No file provided", 400)
    result = trip_service.upload_pod(trip_id, file)
    return service_response(result, _trip_dict)


@trip_bp.route('/job-requests/<int:request_id>/convert', methods=['POST'])
def convert_job_request(request_id):
    result = trip_service.convert_job_request(request_id)
    return service_response(result, _trip_dict, success_code=201)
