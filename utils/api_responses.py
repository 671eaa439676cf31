"""
JSON envelopes for the web API blueprints.

Every response has the shape {"success": bool, "data": ..., "errors": [...]}.
"""
import logging
from flask import jsonify
from werkzeug.exceptions import HTTPException

from services.results import NOT_FOUND

logger = logging.getLogger(__name__)


def _serialize(data, serializer):
    if data is None:
        return None
    if serializer is None:
        return data
    if isinstance(data, list):
        return [serializer(item) for item in data]
    return serializer(data)


def service_response(result, serializer=None, success_code=200):
    """
    Turn a ServiceResult into a JSON response.

    Not-found errors map to 404, validation and state errors to 400. Data
    that accompanies a failure (e.g. the existing invoice) is still returned.
    """
    body = {
        'success': result.success,
        'data': _serialize(result.data, serializer),
        'errors': list(result.errors),
    }
    if result.success:
        return jsonify(body), success_code
    if result.kind == NOT_FOUND:
        return jsonify(body), 404
    return jsonify(body), 400


def error_response(message, code):
    return jsonify({'success': False, 'data': None, 'errors': [message]}), code


def register_error_handlers(blueprint):
    """Report errors raised inside the blueprint's views as JSON"""

    @blueprint.errorhandler(HTTPException)
    def handle_http_error(e):
        return error_response(e.description, e.code)

    @blueprint.errorhandler(Exception)
    def handle_unexpected_error(e):
        logger.exception(f"Unhandled error in {blueprint.name}: {str(e)}")
        return error_response("Internal server error", 500)
